from storefront.schemas.common import CamelModel

class RegisterIn(CamelModel):
    username: str
    password: str
    email: str

class LoginIn(CamelModel):
    username: str
    password: str

class ResendVerificationIn(CamelModel):
    username: str

class ProfileIn(CamelModel):
    username: str

class ChangePasswordIn(CamelModel):
    username: str
    current_password: str
    new_password: str

class RegisterOut(CamelModel):
    message: str
    requires_email_verification: bool
    dev_verification_link: str | None = None
    email_delivery: str | None = None

class LoginOut(CamelModel):
    message: str
    username: str

class ResendVerificationOut(CamelModel):
    message: str
    dev_verification_link: str | None = None
    email_delivery: str | None = None

class ProfileOut(CamelModel):
    username: str
    email_hint: str
    is_verified: bool

class HealthOut(CamelModel):
    ok: bool
    smtp_configured: bool
    email_verification_enabled: bool
