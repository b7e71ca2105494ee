## Dataset helpers: sample container, label names and color palettes for the
## supported image datasets, and readers for IDX, .npy and HDF5 inputs.

import enum
from dataclasses import dataclass

import h5py as h5
import numpy as np
from sklearn.preprocessing import MinMaxScaler


class DatasetType(enum.Enum):
    MNIST = "mnist"
    FASHION_MNIST = "fashion"

    @property
    def display_name(self) -> str:
        return "MNIST" if self is DatasetType.MNIST else "Fashion-MNIST"


MNIST_LABELS = [str(i) for i in range(10)]
FASHION_LABELS = [
    "T-shirt/top",
    "Trouser",
    "Pullover",
    "Dress",
    "Coat",
    "Sandal",
    "Shirt",
    "Sneaker",
    "Bag",
    "Ankle boot",
]

# one RGB color per class, components in [0, 1]
MNIST_PALETTE = [
    (1.0, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (0.0, 0.0, 1.0),
    (1.0, 1.0, 0.0),
    (1.0, 0.0, 1.0),
    (0.0, 1.0, 1.0),
    (1.0, 0.5, 0.0),
    (0.5, 0.0, 1.0),
    (0.0, 0.5, 0.0),
    (0.5, 0.25, 0.0),
]
FASHION_PALETTE = [
    (0.90, 0.10, 0.29),
    (0.24, 0.71, 0.29),
    (1.00, 0.88, 0.10),
    (0.26, 0.39, 0.85),
    (0.96, 0.51, 0.19),
    (0.57, 0.12, 0.71),
    (0.27, 0.94, 0.94),
    (0.94, 0.20, 0.90),
    (0.74, 0.96, 0.05),
    (0.98, 0.75, 0.83),
]
UNCLASSIFIED_COLOR = (0.5, 0.5, 0.5)

IDX_IMAGES_MAGIC = 2051
IDX_LABELS_MAGIC = 2049


@dataclass
class Sample:
    """One labeled input vector, features normalized to [0, 1]."""

    label: int
    pixels: np.ndarray
    dataset_type: DatasetType = DatasetType.MNIST


def get_all_label_names(dataset_type: DatasetType) -> list[str]:
    if dataset_type is DatasetType.FASHION_MNIST:
        return list(FASHION_LABELS)
    return list(MNIST_LABELS)


def get_label_name(label: int, dataset_type: DatasetType) -> str:
    names = get_all_label_names(dataset_type)
    if 0 <= label < len(names):
        return names[label]
    return "Unknown"


def palette_for(dataset_type: DatasetType) -> list[tuple[float, float, float]]:
    if dataset_type is DatasetType.FASHION_MNIST:
        return FASHION_PALETTE
    return MNIST_PALETTE


def samples_from_arrays(
    features: np.ndarray,
    labels: np.ndarray,
    dataset_type: DatasetType = DatasetType.MNIST,
) -> list[Sample]:
    """Pair the rows of a feature matrix with their labels.

    Args:
        features (np.ndarray): N x f array, already normalized to [0, 1]
        labels (np.ndarray): N labels
        dataset_type (DatasetType, optional): Tag attached to every sample. Defaults to MNIST.

    Returns:
        list[Sample]: one sample per row; extra rows on either side are dropped
    """
    n = min(len(features), len(labels))
    return [
        Sample(int(labels[i]), np.asarray(features[i], dtype=float), dataset_type)
        for i in range(n)
    ]


def _limit(n: int, max_samples: int) -> int:
    if max_samples > 0 and max_samples < n:
        return max_samples
    return n


def read_idx_images(path: str, max_samples: int = -1) -> np.ndarray:
    """Read an IDX3 image file into an N x (rows * cols) uint8 array."""
    with open(path, "rb") as f:
        raw = f.read(16)
        header = np.frombuffer(raw[: len(raw) // 4 * 4], dtype=">i4")
        if len(header) < 4 or header[0] != IDX_IMAGES_MAGIC:
            raise ValueError(f"{path} is not an IDX image file")
        _, number_of_images, rows, cols = (int(v) for v in header)
        number_of_images = _limit(number_of_images, max_samples)
        pixels = np.frombuffer(f.read(number_of_images * rows * cols), dtype=np.uint8)
    return pixels.reshape(-1, rows * cols)


def read_idx_labels(path: str, max_samples: int = -1) -> np.ndarray:
    """Read an IDX1 label file into a 1d int array."""
    with open(path, "rb") as f:
        raw = f.read(8)
        header = np.frombuffer(raw[: len(raw) // 4 * 4], dtype=">i4")
        if len(header) < 2 or header[0] != IDX_LABELS_MAGIC:
            raise ValueError(f"{path} is not an IDX label file")
        number_of_labels = _limit(int(header[1]), max_samples)
        labels = np.frombuffer(f.read(number_of_labels), dtype=np.uint8)
    return labels.astype(np.int64)


def load_idx_dataset(
    images_path: str,
    labels_path: str,
    dataset_type: DatasetType = DatasetType.MNIST,
    max_samples: int = -1,
) -> list[Sample]:
    """
    Load an (Fashion-)MNIST style image/label file pair.

    Args:
        images_path (str): path to the IDX3 image file
        labels_path (str): path to the IDX1 label file
        dataset_type (DatasetType, optional): Defaults to DatasetType.MNIST.
        max_samples (int, optional): Keep at most this many samples; -1 keeps all. Defaults to -1.

    Returns:
        list[Sample]: samples with pixels scaled to [0, 1]
    """
    images = read_idx_images(images_path, max_samples)
    labels = read_idx_labels(labels_path, max_samples)
    print(f"Loaded {min(len(images), len(labels))} samples from {images_path}", flush=True)
    return samples_from_arrays(images / 255.0, labels, dataset_type)


def min_max_scale(features: np.ndarray, scaler: MinMaxScaler = None) -> np.ndarray:
    """
    Flatten every row and scale each feature into [0, 1].

    An unfitted scaler is fitted on these features; an already fitted one
    (e.g. fitted on the training set) is only applied, so test data ends up
    in the same units as the data the lattice was trained on.

    Args:
        features (np.ndarray): N x ... array, flattened to N x f
        scaler (MinMaxScaler, optional): scaler to fit or reuse. Defaults to None, a fresh scaler.

    Returns:
        np.ndarray: N x f scaled features
    """
    features = np.asarray(features, dtype=float).reshape(len(features), -1)
    if len(features) == 0:
        return features
    if scaler is None:
        scaler = MinMaxScaler(clip=True)
    if hasattr(scaler, "n_features_in_"):
        return scaler.transform(features)
    return scaler.fit_transform(features)


def load_npy_dataset(
    features_path: str,
    labels_path: str,
    dataset_type: DatasetType = DatasetType.MNIST,
    max_samples: int = -1,
    scaler: MinMaxScaler = None,
) -> list[Sample]:
    """Load features and labels stored as two .npy files, scaled with `scaler` (see min_max_scale)."""
    features = np.load(features_path)
    labels = np.load(labels_path)
    n = _limit(min(len(features), len(labels)), max_samples)
    print(f"Loaded {n} samples from {features_path}", flush=True)
    return samples_from_arrays(min_max_scale(features[:n], scaler), labels[:n], dataset_type)


def load_h5_dataset(
    path: str,
    dataset_type: DatasetType = DatasetType.MNIST,
    max_samples: int = -1,
    scaler: MinMaxScaler = None,
) -> list[Sample]:
    """Load an HDF5 file holding a `features` array and a `labels` vector."""
    with h5.File(path, "r") as f5:
        features = f5["features"][()]
        labels = f5["labels"][()]
    n = _limit(min(len(features), len(labels)), max_samples)
    print(f"Loaded {n} samples from {path}", flush=True)
    return samples_from_arrays(min_max_scale(features[:n], scaler), labels[:n], dataset_type)
