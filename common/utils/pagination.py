from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_


def normalize_paging(page: int, page_size: int, max_page_size: int = 100) -> Tuple[int, int]:
    p = page if page and page > 0 else 1
    ps = page_size if page_size and page_size > 0 else 20
    ps = min(ps, max_page_size)
    return p, ps


def paginate_newest_first(
    session,
    query,
    model,
    *,
    limit: int,
    cursor: Optional[str] = None,
    skip: Optional[int] = None,
    max_limit: int = 50,
) -> Tuple[List[Any], Optional[str]]:
    """Cursor pagination ordered by (created_at desc, id desc).

    The cursor row is included as the first row of the page. Returns the page
    rows and the id of the first row of the following page, if any.
    """
    _, take = normalize_paging(1, limit, max_limit)
    if cursor:
        anchor = session.query(model.created_at).filter(model.id == cursor).first()
        if anchor is not None:
            query = query.filter(
                or_(
                    model.created_at < anchor.created_at,
                    and_(model.created_at == anchor.created_at, model.id <= cursor),
                )
            )
    query = query.order_by(model.created_at.desc(), model.id.desc())
    if skip:
        query = query.offset(int(skip))
    rows = query.limit(take + 1).all()
    next_cursor = None
    if len(rows) > take:
        next_cursor = rows.pop().id
    return rows, next_cursor


def page_dict(items: List[Dict], next_cursor: Optional[str]) -> Dict:
    return {"next": next_cursor, "items": items}
