from enum import Enum

class ErrorCode(str, Enum):
    # --- Generic / HTTP-ish ---
    INTERNAL_ERROR = "internal_error"
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"

    # --- Accounts ---
    USERNAME_TAKEN = "username_taken"
    EMAIL_TAKEN = "email_taken"
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    PASSWORD_SAME_AS_OLD = "password_same_as_old"

    # --- Email verification ---
    EMAIL_NOT_VERIFIED = "email_not_verified"
    ALREADY_VERIFIED = "already_verified"
    FEATURE_DISABLED = "feature_disabled"

    # --- Infra / Storage ---
    DATABASE_ERROR = "database_error"
    UNIQUE_CONSTRAINT_VIOLATION = "unique_constraint_violation"
    SCHEMA_ERROR = "schema_error"

    # --- Config / Env ---
    STARTUP_ERROR = "startup_error"
