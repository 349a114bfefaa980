"""
User-facing messages for error codes.

Domain operations only ever produce ``ErrorCode`` values; turning them into
text is the job of the reporting layer, which asks the catalog:

    catalog = MessageCatalog()
    catalog.register("pt-BR", {ErrorCode.USER_NOT_FOUND: "Usuário não encontrado"})
    catalog.describe(result.error, locale="pt-BR")

Unknown locales and untranslated codes fall back to English.
"""

from .errors import AuthError, ErrorCode

DEFAULT_LOCALE = "en"

DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_USER_ID: "Invalid user ID",
    ErrorCode.INVALID_EMAIL: "Invalid email address",
    ErrorCode.PASSWORD_REQUIRED: "Password is required",
    ErrorCode.PASSWORD_TOO_SHORT: "Password is too short",
    ErrorCode.PASSWORD_TOO_LONG: "Password is too long",
    ErrorCode.PASSWORD_UNCHANGED: "New password must be different from the current password",
    ErrorCode.INVALID_FULL_NAME: "Full name must be between 2 and 100 characters",
    ErrorCode.INVALID_PHONE: "Invalid phone number",
    ErrorCode.UNSUPPORTED_PROVIDER: "Unsupported sign-in provider",
    ErrorCode.PROVIDER_NOT_CONFIGURED: "This sign-in provider is not available",
    ErrorCode.PROVIDER_NOT_LINKED: "This provider is not linked to your account",
    ErrorCode.INVALID_ROLE_NAME: "Invalid role name",
    ErrorCode.INVALID_PERMISSION_NAME: "Permissions must use the resource:action format",
    ErrorCode.USER_NOT_FOUND: "User not found",
    ErrorCode.ROLE_NOT_FOUND: "Role not found",
    ErrorCode.PERMISSION_NOT_FOUND: "Permission not found",
    ErrorCode.EMAIL_ALREADY_REGISTERED: "Email already registered",
    ErrorCode.DUPLICATE_LINK: "This provider is already linked to your account",
    ErrorCode.ALREADY_LINKED_TO_ANOTHER_ACCOUNT: "This account is already linked to another user",
    ErrorCode.ROLE_ALREADY_EXISTS: "A role with this name already exists",
    ErrorCode.ROLE_ALREADY_ASSIGNED: "The user already has this role",
    ErrorCode.ROLE_NOT_ASSIGNED: "The user does not have this role",
    ErrorCode.PERMISSION_ALREADY_EXISTS: "Permission already exists",
    ErrorCode.PERMISSION_ALREADY_GRANTED: "Permission already granted",
    ErrorCode.PERMISSION_NOT_GRANTED: "Permission is not granted",
    ErrorCode.INVALID_CREDENTIALS: "Invalid credentials",
    ErrorCode.UNAUTHENTICATED: "Authentication required",
    ErrorCode.INVALID_TOKEN: "Invalid or expired token",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient permissions",
    ErrorCode.SYSTEM_ROLE: "System roles cannot be modified",
    ErrorCode.CANNOT_DEACTIVATE_SELF: "You cannot deactivate your own account here",
    ErrorCode.LAST_AUTH_METHOD: (
        "Cannot remove your only sign-in method. "
        "Link another provider or set a password first."
    ),
    ErrorCode.PROVIDER_EXCHANGE_FAILED: "Could not reach the sign-in provider, please try again",
    ErrorCode.STORAGE_FAILURE: "An error occurred",
}


class MessageCatalog:
    """Locale-aware lookup of messages by error code."""

    def __init__(self, default_locale: str = DEFAULT_LOCALE):
        self.default_locale = default_locale
        self._messages: dict[str, dict[ErrorCode, str]] = {
            default_locale: dict(DEFAULT_MESSAGES),
        }

    def register(self, locale: str, messages: dict[ErrorCode, str]) -> None:
        """Add or override messages for a locale."""
        self._messages.setdefault(locale, {}).update(messages)

    def message_for(self, code: ErrorCode, locale: str | None = None) -> str:
        if locale and code in self._messages.get(locale, {}):
            return self._messages[locale][code]
        return self._messages[self.default_locale].get(code, code.value)

    def describe(self, error: AuthError, locale: str | None = None) -> str:
        return self.message_for(error.code, locale)


catalog = MessageCatalog()
