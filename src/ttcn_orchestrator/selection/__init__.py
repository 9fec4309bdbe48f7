"""Identifier selection by name and tag baskets."""

from ttcn_orchestrator.selection.basket import Basket, BasketError, build_basket

__all__ = ["Basket", "BasketError", "build_basket"]
