from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import Expired, InvalidCredential, Unauthenticated


class TokenVerifier:
    """Issues and verifies signed bearer credentials carrying a subject id."""

    def __init__(
        self, secret: Optional[str] = None, max_age_secs: Optional[int] = None
    ) -> None:
        settings = get_settings()
        self.max_age_secs = max_age_secs or settings.token_max_age_secs
        self._serializer = URLSafeTimedSerializer(
            secret or settings.auth_secret, salt="fintrack-bearer"
        )

    def issue(self, subject: str) -> str:
        return self._serializer.dumps({"sub": subject})

    def verify(self, token: Optional[str]) -> str:
        if not token:
            raise Unauthenticated("No token provided")
        try:
            data = self._serializer.loads(token, max_age=self.max_age_secs)
        except SignatureExpired as exc:
            raise Expired("Token expired") from exc
        except BadSignature as exc:
            raise InvalidCredential("Invalid token") from exc

        subject = data.get("sub") if isinstance(data, dict) else None
        if not isinstance(subject, str) or not subject:
            raise InvalidCredential("Invalid token")
        return subject


def bearer_token(header: Optional[str]) -> str:
    if not header:
        raise Unauthenticated("No token provided")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("No token provided")
    return token.strip()


def bearer_subject(header: Optional[str], verifier: TokenVerifier) -> str:
    return verifier.verify(bearer_token(header))
