"""Product registration and restocking: commands and handler."""

from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.inventory.product import Product


@marketplace.command(part_of="Product")
class RegisterProduct:
    name = String(required=True, max_length=255)
    description = Text()
    price = Float(required=True, min_value=0.0)
    stock = Integer(default=0, min_value=0)
    seller_id = Identifier(required=True)


@marketplace.command(part_of="Product")
class RestockProduct:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command_handler(part_of=Product)
class StockingHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        product = Product.register(
            name=command.name,
            description=command.description,
            price=command.price,
            stock=command.stock or 0,
            seller_id=command.seller_id,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)

    @handle(RestockProduct)
    def restock_product(self, command):
        ledger = current_domain.repository_for(Product)
        return ledger.release(command.product_id, command.quantity)
