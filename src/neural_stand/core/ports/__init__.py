from .dataset_provider import DatasetProviderPort
from .metrics_sink import MetricsSinkPort
from .training_observer import ProgressCallback, TrainingObserverPort

__all__ = [
	"DatasetProviderPort",
	"MetricsSinkPort",
	"ProgressCallback",
	"TrainingObserverPort",
]
