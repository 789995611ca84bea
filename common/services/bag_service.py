from typing import Dict, List
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from ..db.session import get_session
from ..errors import BadRequestError, ConflictError, InternalError, NotFoundError, ServiceError
from ..models.bag import Bag, BagItem
from ..models.product import Product
from ..models.store import Store
from ..models.user import User
from ..utils.dto import to_bag_dto
from ..utils.ids import new_id
from ..utils.money import line_amount
from .logging import log_event


def snapshot_item(bag_id: str, product: Product) -> BagItem:
    return BagItem(
        id=new_id(),
        bag_id=bag_id,
        product_id=product.id,
        name=product.name,
        description=product.description,
        images=list(product.images or []),
        price=product.price,
        shipping_price=product.shipping_price,
    )


def delete_bag(session, bag_id: str, **conditions) -> int:
    """Delete a bag and its items inside the caller's transaction.

    Extra keyword conditions (e.g. ``user_id=...``) must also match; returns
    the number of bag rows removed.
    """
    q = session.query(Bag).filter(Bag.id == bag_id)
    for column, value in conditions.items():
        q = q.filter(getattr(Bag, column) == value)
    if q.count() == 0:
        return 0
    session.query(BagItem).filter(BagItem.bag_id == bag_id).delete(synchronize_session=False)
    return q.delete(synchronize_session=False)


class BagService:
    """Bag operations backed by DB."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def add_to_bag(self, *, user_id: str, product_id: str) -> Dict:
        if not product_id:
            raise BadRequestError("product_id required")
        try:
            with self._session_factory() as session:
                prod = session.query(Product).filter(Product.id == product_id).first()
                if not prod:
                    raise NotFoundError("Product Not Found")
                store = session.query(Store).filter(Store.id == prod.store_id).first()
                if store is None:
                    raise NotFoundError("Store Not Found")
                if store.user_id == user_id:
                    raise BadRequestError("You Own This Product")
                if prod.sold:
                    raise BadRequestError("Product Already Sold")

                amount = line_amount(prod.price, prod.shipping_price)
                bag = (
                    session.query(Bag)
                    .filter(Bag.store_id == prod.store_id, Bag.user_id == user_id)
                    .first()
                )
                if bag is None:
                    bag = Bag(
                        id=new_id(),
                        store_id=prod.store_id,
                        user_id=user_id,
                        subtotal=prod.price,
                        shipping_total=prod.shipping_price,
                        grand_total=amount,
                    )
                    session.add(bag)
                    session.flush()
                else:
                    session.query(Bag).filter(Bag.id == bag.id).update(
                        {
                            Bag.subtotal: Bag.subtotal + prod.price,
                            Bag.shipping_total: Bag.shipping_total + prod.shipping_price,
                            Bag.grand_total: Bag.grand_total + amount,
                        },
                        synchronize_session=False,
                    )
                session.add(snapshot_item(bag.id, prod))
                session.flush()
                session.expire(bag)
                seller = session.get(User, store.user_id)
                result = to_bag_dto(bag, seller)
        except IntegrityError:
            raise ConflictError("Product Already In Cart")
        except ServiceError:
            raise
        except SQLAlchemyError as exc:
            log_event("error", "bag.add_failed", product_id=product_id, error=str(exc))
            raise InternalError("Unable To Add Product To Bag")
        log_event("info", "bag.item_added", bag_id=result["id"], product_id=product_id, grand_total=result["grand_total"])
        return result

    def remove_from_bag(self, *, user_id: str, bag_id: str, bag_item_id: str) -> Dict:
        # Totals are not decremented when a single item goes; only the
        # whole-bag delete resets them.
        with self._session_factory() as session:
            bag = session.query(Bag).filter(Bag.id == bag_id, Bag.user_id == user_id).first()
            if not bag:
                raise NotFoundError("Bag Not Found")
            count = session.query(func.count(BagItem.id)).filter(BagItem.bag_id == bag_id).scalar() or 0
            if count <= 1:
                delete_bag(session, bag_id)
                return {"deleted": "bag"}
            removed = (
                session.query(BagItem)
                .filter(BagItem.id == bag_item_id, BagItem.bag_id == bag_id)
                .delete(synchronize_session=False)
            )
            if not removed:
                raise NotFoundError("Bag Item Not Found")
            return {"deleted": "bagItem"}

    def count_bag_items(self, *, user_id: str) -> int:
        with self._session_factory() as session:
            return (
                session.query(func.count(BagItem.id))
                .join(Bag, Bag.id == BagItem.bag_id)
                .filter(Bag.user_id == user_id)
                .scalar()
                or 0
            )

    def get_user_bags(self, *, user_id: str) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(Bag, User)
                .join(Store, Store.id == Bag.store_id)
                .join(User, User.id == Store.user_id)
                .filter(Bag.user_id == user_id)
                .order_by(Bag.created_at.desc())
                .all()
            )
            return [to_bag_dto(bag, seller) for bag, seller in rows]

    def get_user_bag(self, *, user_id: str, bag_id: str) -> Dict:
        """Readable by the buyer and by the owner of the bag's store."""
        with self._session_factory() as session:
            row = (
                session.query(Bag, User)
                .join(Store, Store.id == Bag.store_id)
                .join(User, User.id == Store.user_id)
                .filter(Bag.id == bag_id)
                .first()
            )
            if not row or user_id not in (row[0].user_id, row[1].id):
                raise NotFoundError("Bag Not Found")
            return to_bag_dto(row[0], row[1])
