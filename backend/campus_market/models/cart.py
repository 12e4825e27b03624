"""
Cart model: one per buyer, holding the line items they intend to book.

Items snapshot the product title, price and seller when added, so the cart
shows what the buyer saw. The cart never reserves stock; the booking engine
re-checks every line item when the buyer books.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from campus_market.db.base import Base, TimestampMixin


class Cart(Base, TimestampMixin):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    buyer_name = Column(String(100), nullable=False)
    buyer_email = Column(String(255), nullable=False)

    items = relationship(
        "CartItem",
        back_populates="cart",
        order_by="CartItem.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def total_price(self) -> float:
        return round(sum(item.price * item.quantity for item in self.items), 2)

    def find_item(self, product_id: int):
        return next((item for item in self.items if item.product_id == product_id), None)

    def __repr__(self) -> str:
        return f"<Cart(id={self.id}, buyer={self.buyer_id}, items={len(self.items)})>"


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=False, index=True)

    # Plain reference: a deleted product stays visible in the cart until removed
    product_id = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    seller_id = Column(Integer, nullable=False)
    seller_name = Column(String(100), nullable=False)
    seller_email = Column(String(255), nullable=False)

    cart = relationship("Cart", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_cart_item_quantity_positive"),
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
    )

    def __repr__(self) -> str:
        return f"<CartItem(cart={self.cart_id}, product={self.product_id}, qty={self.quantity})>"
