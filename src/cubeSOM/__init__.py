from .som import Lattice, Neuron, UNCLASSIFIED
from .datasets import DatasetType, Sample
from .metrics import ClassificationResult, MetricsReport, evaluate_classification
