from .training import ConfigurationError, NeuralStandError, TrainingError

__all__ = [
	"ConfigurationError",
	"NeuralStandError",
	"TrainingError",
]
