"""Register / login / resend / verify orchestration.

Verification state of an account is PENDING_VERIFICATION (``is_verified``
false, one outstanding token) or VERIFIED (terminal, token cleared). New
accounts start VERIFIED when the feature flag is off.
"""
import enum
import logging
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError

from storefront.core.config import Settings
from storefront.core.error_codes import ErrorCode
from storefront.core.exceptions import (
    AlreadyVerified,
    Conflict,
    FeatureDisabled,
    InvalidInput,
    NotFound,
    StartupError,
    Unauthorized,
    VerificationRequired,
)
from storefront.core.security import (
    create_verification_token,
    hash_password,
    hash_verification_token,
    verify_password,
)
from storefront.core.validators import (
    mask_email,
    validate_credentials,
    validate_email,
    validate_password,
    validate_username,
)
from storefront.db.session import Database
from storefront.models.user import Account
from storefront.repositories.accounts import AccountRepository
from storefront.schemas.auth import (
    LoginOut,
    ProfileOut,
    RegisterOut,
    ResendVerificationOut,
)
from storefront.schemas.common import Message
from storefront.services.email import DeliveryResult, DeliveryStatus, EmailDispatcher

logger = logging.getLogger(__name__)

# shorter tokens are rejected before hashing
MIN_TOKEN_LENGTH = 20


class VerificationOutcome(str, enum.Enum):
    success = "success"
    invalid = "invalid"
    expired = "expired"
    error = "error"


def _conflict_for(existing: Account | None, username: str) -> Conflict:
    if existing is None:
        return Conflict()
    if existing.username == username:
        return Conflict("This username is already taken.", error_code=ErrorCode.USERNAME_TAKEN)
    return Conflict("This email is already in use.", error_code=ErrorCode.EMAIL_TAKEN)


class AuthFlowController:
    def __init__(self, settings: Settings, database: Database, mailer: EmailDispatcher):
        self._settings = settings
        self._database = database
        self._mailer = mailer

    @property
    def verification_enabled(self) -> bool:
        return self._settings.EMAIL_VERIFICATION_ENABLED

    def verification_link(self, base_url: str, raw_token: str) -> str:
        return f"{base_url.rstrip('/')}{self._settings.VERIFY_LINK_PATH}?{urlencode({'token': raw_token})}"

    async def _dispatch(self, *, to_email: str, username: str, link: str) -> DeliveryResult:
        ttl = self._settings.EMAIL_VERIFY_TTL_MINUTES
        body = (
            f"Hi {username},\n\n"
            f"Open this link to verify your account:\n{link}\n\n"
            f"The link expires in {ttl} minutes."
        )
        # best effort: the token is already committed, so a failure here only degrades the response
        try:
            return await self._mailer.send(to_email, "Verify your email", body)
        except Exception as e:
            logger.warning("Verification email for %s could not be sent", username, exc_info=True)
            return DeliveryResult(DeliveryStatus.failed, error=type(e).__name__)

    async def register(self, username, password, email, *, base_url: str) -> RegisterOut:
        clean_username = validate_credentials(username, password)
        clean_email = validate_email(email)

        # bcrypt runs before a pooled connection is checked out
        password_hash = hash_password(password, self._settings.BCRYPT_ROUNDS)

        token = None
        async with self._database.session() as db:
            existing = await AccountRepository.find_by_username_or_email(db, clean_username, clean_email)
            if existing is not None:
                raise _conflict_for(existing, clean_username)

            account = Account(
                username=clean_username,
                email=clean_email,
                password_hash=password_hash,
                is_verified=True,
            )
            if self.verification_enabled:
                token = create_verification_token(self._settings.EMAIL_VERIFY_TTL_MINUTES)
                account.is_verified = False
                account.verification_token_hash = token.token_hash
                account.verification_expires_at = token.expires_at

            try:
                await AccountRepository.insert(db, account)
            except Conflict:
                # lost a race with a concurrent registration; report which field
                winner = await AccountRepository.find_by_username_or_email(db, clean_username, clean_email)
                raise _conflict_for(winner, clean_username)
            await db.commit()

        if token is None:
            logger.info("Registered %s (verification disabled)", clean_username)
            return RegisterOut(message="Registration complete. You can log in now.", requires_email_verification=False)

        logger.info("Registered %s, verification pending", clean_username)
        link = self.verification_link(base_url, token.raw_token)
        result = await self._dispatch(to_email=clean_email, username=clean_username, link=link)
        if result.delivered:
            return RegisterOut(
                message="Registration complete. Check your inbox for the verification link.",
                requires_email_verification=True,
                email_delivery=result.status.value,
            )
        return RegisterOut(
            message="Registration complete. The verification email could not be sent; use the link below.",
            requires_email_verification=True,
            dev_verification_link=link,
            email_delivery=result.status.value,
        )

    async def login(self, username, password) -> LoginOut:
        clean_username = validate_credentials(username, password)

        async with self._database.session() as db:
            account = await AccountRepository.find_by_username(db, clean_username)

        # same answer for unknown user and wrong password
        if account is None or not verify_password(password, account.password_hash):
            raise Unauthorized()

        if self.verification_enabled and not account.is_verified:
            raise VerificationRequired(
                extra={"requiresEmailVerification": True, "emailHint": mask_email(account.email)},
            )

        return LoginOut(message="Login successful.", username=account.username)

    async def resend_verification(self, username, *, base_url: str) -> ResendVerificationOut:
        if not self.verification_enabled:
            raise FeatureDisabled()
        clean_username = validate_username(username)

        async with self._database.session() as db:
            account = await AccountRepository.find_by_username(db, clean_username)
            if account is None or not account.email:
                raise NotFound()
            if account.is_verified:
                raise AlreadyVerified()

            # overwrites the previous hash, so older links stop matching
            token = create_verification_token(self._settings.EMAIL_VERIFY_TTL_MINUTES)
            await AccountRepository.update_verification(
                db,
                account.id,
                token_hash=token.token_hash,
                expires_at=token.expires_at,
                is_verified=False,
                email_verified_at=None,
            )
            await db.commit()
            to_email, canonical = account.email, account.username

        link = self.verification_link(base_url, token.raw_token)
        result = await self._dispatch(to_email=to_email, username=canonical, link=link)
        if result.delivered:
            return ResendVerificationOut(message="A new verification link has been sent.", email_delivery=result.status.value)
        return ResendVerificationOut(
            message="The verification email could not be sent; use the link below.",
            dev_verification_link=link,
            email_delivery=result.status.value,
        )

    async def verify(self, raw_token: str | None) -> VerificationOutcome:
        if not self.verification_enabled:
            # links issued before the flag was turned off still land on success
            return VerificationOutcome.success

        token = (raw_token or "").strip()
        if len(token) < MIN_TOKEN_LENGTH:
            return VerificationOutcome.invalid

        token_hash = hash_verification_token(token)
        try:
            async with self._database.session() as db:
                account = await AccountRepository.find_by_active_token_hash(db, token_hash)
                # wrong, already used and timed out all look the same from outside
                if account is None:
                    return VerificationOutcome.expired
                # the update re-checks the token, so only one concurrent caller wins
                if not await AccountRepository.mark_verified(db, account.id, token_hash):
                    return VerificationOutcome.expired
                await db.commit()
                username = account.username
        except (SQLAlchemyError, StartupError):
            logger.exception("Email verification failed")
            return VerificationOutcome.error

        logger.info("Email verified for %s", username)
        return VerificationOutcome.success

    async def profile(self, username) -> ProfileOut:
        clean_username = validate_username(username)
        async with self._database.session() as db:
            account = await AccountRepository.find_by_username(db, clean_username)
        if account is None:
            raise NotFound()
        return ProfileOut(username=account.username, email_hint=mask_email(account.email), is_verified=account.is_verified)

    async def change_password(self, username, current_password, new_password) -> Message:
        clean_username = validate_credentials(username, current_password)
        validate_password(new_password)
        if new_password == current_password:
            raise InvalidInput("The new password must differ from the current one.", error_code=ErrorCode.PASSWORD_SAME_AS_OLD)

        async with self._database.session() as db:
            account = await AccountRepository.find_by_username(db, clean_username)
        if account is None or not verify_password(current_password, account.password_hash):
            raise Unauthorized()
        password_hash = hash_password(new_password, self._settings.BCRYPT_ROUNDS)

        async with self._database.session() as db:
            await AccountRepository.update_password_hash(db, account.id, password_hash)
            await db.commit()

        logger.info("Password changed for %s", clean_username)
        return Message(message="Password updated.")
