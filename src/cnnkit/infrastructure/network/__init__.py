from ._network import Network
from ._gradient_check import check_gradients, numeric_gradient

__all__ = ["Network", "check_gradients", "numeric_gradient"]
