from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from saddle_serials.domain.session import ShopCredentials
from saddle_serials.infrastructure.models import ShopSession


class SessionStore:
    """Per-shop credential storage backing the OAuth provider and API calls."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def store_session(self, credentials: ShopCredentials) -> None:
        with self._session_factory.begin() as db:
            row = db.get(ShopSession, credentials.id)
            if row is None:
                row = ShopSession(id=credentials.id)
                db.add(row)
            row.shop = credentials.shop
            row.access_token = credentials.access_token
            row.is_online = credentials.is_online
            row.scope = credentials.scope
            row.expires = credentials.expires

    def load_session(self, session_id: str) -> ShopCredentials | None:
        with self._session_factory() as db:
            row = db.get(ShopSession, session_id)
            return ShopCredentials.model_validate(row) if row else None

    def delete_session(self, session_id: str) -> bool:
        with self._session_factory.begin() as db:
            row = db.get(ShopSession, session_id)
            if row is None:
                return False
            db.delete(row)
            return True

    def find_for_shop(self, shop: str) -> ShopCredentials | None:
        """Prefer the shop's offline session; fall back to an online one."""
        with self._session_factory() as db:
            for is_online in (False, True):
                row = db.scalars(
                    select(ShopSession)
                    .where(ShopSession.shop == shop, ShopSession.is_online.is_(is_online))
                    .order_by(ShopSession.id.desc())
                ).first()
                if row is not None:
                    return ShopCredentials.model_validate(row)
        return None

    def delete_for_shop(self, shop: str) -> int:
        with self._session_factory.begin() as db:
            result = db.execute(delete(ShopSession).where(ShopSession.shop == shop))
            return result.rowcount or 0
