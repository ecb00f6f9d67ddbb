from .arrays import ArrayDatasetProvider
from .synthetic_figures import SyntheticFiguresDatasetProvider

__all__ = [
	"ArrayDatasetProvider",
	"SyntheticFiguresDatasetProvider",
]
