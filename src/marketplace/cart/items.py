"""Cart item management: commands and handlers."""

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from marketplace.cart.cart import CartLine
from marketplace.domain import marketplace
from marketplace.errors import InsufficientStock
from marketplace.inventory.product import Product


@marketplace.command(part_of="CartLine")
class AddToCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(default=1, min_value=1)


@marketplace.command(part_of="CartLine")
class UpdateCartQuantity:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="CartLine")
class RemoveFromCart:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)


def _available_product(product_id):
    product = current_domain.repository_for(Product).get(product_id)
    if not product.is_active:
        raise ObjectNotFoundError(f"Product {product_id} not found or unavailable")
    return product


@marketplace.command_handler(part_of=CartLine)
class CartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = _available_product(command.product_id)
        quantity = command.quantity or 1

        repo = current_domain.repository_for(CartLine)
        line = repo.line_for(command.user_id, command.product_id)
        new_quantity = quantity + (line.quantity if line else 0)
        if product.stock < new_quantity:
            raise InsufficientStock(product.id, requested=new_quantity, available=product.stock)

        if line is None:
            line = CartLine.create(
                user_id=command.user_id,
                product_id=command.product_id,
                quantity=quantity,
                unit_price=product.price,
            )
        else:
            line.change_quantity(new_quantity)
        repo.add(line)
        return str(line.id)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        product = _available_product(command.product_id)
        repo = current_domain.repository_for(CartLine)
        line = repo.line_for(command.user_id, command.product_id)
        if line is None:
            raise ValidationError({"product_id": ["Product is not in the cart"]})
        if product.stock < command.quantity:
            raise InsufficientStock(product.id, requested=command.quantity, available=product.stock)

        line.change_quantity(command.quantity)
        repo.add(line)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(CartLine)
        line = repo.line_for(command.user_id, command.product_id)
        if line is None:
            raise ValidationError({"product_id": ["Product is not in the cart"]})
        repo._dao.delete(line)


@marketplace.command(part_of="CartLine")
class ClearCart:
    user_id = Identifier(required=True)


@marketplace.command_handler(part_of=CartLine)
class ClearCartHandler:
    @handle(ClearCart)
    def clear_cart(self, command):
        return current_domain.repository_for(CartLine).clear(command.user_id)
