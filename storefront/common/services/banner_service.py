from typing import Any, Dict, List, Optional

from ..errors import NotFoundError
from ..models.banner import Banner
from .logging import log_event


DEFAULT_TEXT_COLOR = "#FFFFFF"
_NULLISH = ("", "null", "undefined")

# first match wins on create; on update every provided alias is applied in this order
LINK_ALIASES = ("link", "link_url")
ORDER_ALIASES = ("order", "position", "display_order")
PLAIN_FIELDS = ("title", "subtitle", "image_url", "button_text", "active", "start_date", "end_date")


def _text_color(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return None if text in _NULLISH else text


class BannerService:
    """Homepage banners; accepts the legacy `link_url` / `position` / `display_order` names."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def list_active(self) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(Banner)
                .filter(Banner.active.is_(True))
                .order_by(Banner.display_order.asc(), Banner.created_at.asc())
                .all()
            )
            return [b.to_dict() for b in rows]

    def list_all(self) -> List[Dict]:
        with self._session_factory() as session:
            rows = session.query(Banner).order_by(Banner.display_order.asc(), Banner.created_at.asc()).all()
            return [b.to_dict() for b in rows]

    def create(self, data: Dict) -> Dict:
        link = next((data[k] for k in LINK_ALIASES if data.get(k)), None)
        order = next((data[k] for k in ORDER_ALIASES if data.get(k)), 0)
        with self._session_factory() as session:
            row = Banner(
                title=data.get("title"),
                subtitle=data.get("subtitle") or None,
                image_url=data.get("image_url"),
                link=link,
                button_text=data.get("button_text") or None,
                display_order=int(order),
                active=bool(data["active"]) if data.get("active") is not None else True,
                start_date=data.get("start_date") or None,
                end_date=data.get("end_date") or None,
                text_color=data.get("text_color") or DEFAULT_TEXT_COLOR,
            )
            session.add(row)
            session.flush()
            log_event("info", "banner.created", banner_id=row.id, title=row.title)
            return row.to_dict()

    def update(self, banner_id: str, data: Dict) -> Dict:
        with self._session_factory() as session:
            row = session.get(Banner, banner_id)
            if row is None:
                raise NotFoundError("Banner not found")
            for name in PLAIN_FIELDS:
                if name in data:
                    setattr(row, name, bool(data[name]) if name == "active" else data[name])
            for name in LINK_ALIASES:
                if name in data:
                    row.link = data[name]
            for name in ORDER_ALIASES:
                if name in data and data[name] is not None:
                    row.display_order = int(data[name])
            if "text_color" in data:
                row.text_color = _text_color(data["text_color"])
            session.flush()
            log_event("info", "banner.updated", banner_id=row.id, fields=sorted(data))
            return row.to_dict()

    def delete(self, banner_id: str) -> bool:
        with self._session_factory() as session:
            deleted = session.query(Banner).filter(Banner.id == banner_id).delete(synchronize_session=False)
        log_event("info", "banner.deleted", banner_id=banner_id, deleted=bool(deleted))
        return bool(deleted)
