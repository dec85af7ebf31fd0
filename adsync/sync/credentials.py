"""AdSync - Meta Credential Store.

Tokens are stored Fernet-encrypted. `decrypt()` is the only place a
plaintext token is produced; it lives in the returned Credential, whose
repr never shows it.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional
from pydantic import BaseModel, Field

from sqlmodel import Session, select

from adsync.core.security import decrypt_token, encrypt_token
from adsync.models.sync_models import MetaToken
from adsync.core.logging import get_logger

logger = get_logger("sync.credentials")


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class StoredCredential(BaseModel):
    """Credential row as read from storage, still encrypted."""

    user_id: str
    ad_account_id: str
    expires_at: datetime
    encrypted_access_token: str = Field(repr=False)
    client_id: Optional[int] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return _aware(self.expires_at) < now


class Credential(BaseModel):
    """Decrypted credential for one ad account."""

    user_id: str
    ad_account_id: str
    expires_at: datetime
    token: str = Field(repr=False)
    client_id: Optional[int] = None


class CredentialStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def store_credential(
        self,
        user_id: str,
        access_token: str,
        ad_account_id: str,
        expires_at: datetime,
        client_id: Optional[int] = None,
    ) -> None:
        """Encrypt and save a token, replacing the one for the same account."""
        with self.session_factory() as session:
            row = session.exec(
                select(MetaToken).where(
                    MetaToken.user_id == user_id,
                    MetaToken.ad_account_id == ad_account_id,
                )
            ).first()
            encrypted = encrypt_token(access_token)
            if row:
                row.encrypted_access_token = encrypted
                row.expires_at = expires_at
                row.client_id = client_id if client_id is not None else row.client_id
                row.updated_at = datetime.now(timezone.utc)
            else:
                row = MetaToken(
                    user_id=user_id,
                    encrypted_access_token=encrypted,
                    ad_account_id=ad_account_id,
                    expires_at=expires_at,
                    client_id=client_id,
                )
            session.add(row)
            session.commit()
        logger.info(f"Stored Meta credential for user {user_id}", extra={"account_id": ad_account_id})

    def list_credentials(self, user_id: Optional[str] = None) -> List[StoredCredential]:
        """All stored credentials, optionally for one user. Expired ones included."""
        with self.session_factory() as session:
            query = select(MetaToken).order_by(MetaToken.id)
            if user_id is not None:
                query = query.where(MetaToken.user_id == user_id)
            return [
                StoredCredential(
                    user_id=row.user_id,
                    ad_account_id=row.ad_account_id,
                    expires_at=row.expires_at,
                    encrypted_access_token=row.encrypted_access_token,
                    client_id=row.client_id,
                )
                for row in session.exec(query).all()
            ]

    def decrypt(self, stored: StoredCredential) -> Credential:
        return Credential(
            user_id=stored.user_id,
            ad_account_id=stored.ad_account_id,
            expires_at=_aware(stored.expires_at),
            token=decrypt_token(stored.encrypted_access_token),
            client_id=stored.client_id,
        )

    def get_credential(self, user_id: str) -> Optional[Credential]:
        """First non-expired credential of a user, decrypted. None if there is none."""
        for stored in self.list_credentials(user_id):
            if not stored.is_expired():
                return self.decrypt(stored)
        logger.warning(f"No valid Meta credential for user {user_id}")
        return None
