## Three-dimensional Kohonen self-organizing map trained on labeled image vectors,
## with post-training neuron labeling and nearest-prototype classification.

import numpy as np
from numba import njit, prange

from .datasets import DatasetType, Sample, palette_for, UNCLASSIFIED_COLOR
from .metrics import ClassificationResult, MetricsReport, evaluate_classification

UNCLASSIFIED = -1


class Neuron:
    """Read-only view of one node of a Lattice.

    The lattice keeps its state as whole-map arrays; a Neuron only indexes
    into them, so it always reflects the current training state. Arrays
    returned here cannot be written to.
    """

    def __init__(self, lattice: "Lattice", index: int):
        self._lattice = lattice
        self.index = index

    def _row(self, array: np.ndarray) -> np.ndarray:
        row = array[self.index].view()
        row.flags.writeable = False
        return row

    @property
    def grid(self) -> tuple[int, int, int]:
        return self._lattice.coordinate(self.index)

    @property
    def position(self) -> np.ndarray:
        return self._row(self._lattice.positions)

    @property
    def x(self) -> float:
        return float(self._lattice.positions[self.index, 0])

    @property
    def y(self) -> float:
        return float(self._lattice.positions[self.index, 1])

    @property
    def z(self) -> float:
        return float(self._lattice.positions[self.index, 2])

    @property
    def weights(self) -> np.ndarray:
        return self._row(self._lattice.lattice)

    @property
    def activation_count(self) -> int:
        return int(self._lattice.activation_count[self.index])

    @property
    def dominant_class(self) -> int:
        return int(self._lattice.dominant_class[self.index])

    @property
    def color(self) -> np.ndarray:
        return self._row(self._lattice.colors)

    @property
    def prototype_image(self) -> np.ndarray:
        return self._row(self._lattice.prototypes)

    def __repr__(self):
        return f"Neuron(index={self.index}, grid={self.grid}, dominant_class={self.dominant_class})"


class Lattice:
    def __init__(
        self,
        xdim: int = 10,
        ydim: int = 10,
        zdim: int = 10,
        input_size: int = 784,
        seed: int = None,
    ):
        """Build a 3D SOM lattice.

        Nodes are laid out in nested z, y, x order, so node (x, y, z) sits at
        row z * xdim * ydim + y * xdim + x of every per-node array.

        Args:
                xdim (int): The x dimension of the map. Default is 10.
                ydim (int): The y dimension of the map. Default is 10.
                zdim (int): The z dimension of the map. Default is 10.
                input_size (int): Length of each input (and weight) vector. Default is 784 (28 x 28 images).
                seed (int, optional): Seed for the random generator used for initialization and shuffling.
                        Defaults to None, which seeds from system entropy.
        """
        self.xdim = xdim
        self.ydim = ydim
        self.zdim = zdim
        self.input_size = input_size
        self.epoch = 0
        self.dataset_type = DatasetType.MNIST
        self.seed(seed)

        number_nodes = xdim * ydim * zdim

        # NOTE: each row represents a node, each column represents a feature.
        self.lattice = np.zeros((number_nodes, input_size))
        self.activation_count = np.zeros(number_nodes, dtype=np.int64)
        self.dominant_class = np.full(number_nodes, UNCLASSIFIED, dtype=np.int64)
        self.colors = np.tile(np.asarray(UNCLASSIFIED_COLOR, dtype=float), (number_nodes, 1))
        self.prototypes = np.zeros((number_nodes, input_size))

        m = np.arange(number_nodes)
        self.m3Ds = np.stack(self.coordinate(m), axis=1)  # grid coordinates, [N, 3]

        dims = np.array([xdim, ydim, zdim], dtype=float)
        self.positions = (self.m3Ds - dims / 2.0) * 2.0 / dims  # centered in [-1, 1]^3

        self.neurons = [Neuron(self, i) for i in range(number_nodes)]

    def seed(self, seed: int = None):
        """Reset the random generator shared by initialization and shuffling."""
        self.rng = np.random.default_rng(seed)

    @property
    def number_of_nodes(self) -> int:
        return self.lattice.shape[0]

    def rowix(self, x, y, z):
        """
        Convert from a xyz-coordinate to a row index.

        Args:
                x (int): The x-coordinate of the map.
                y (int): The y-coordinate of the map.
                z (int): The z-coordinate of the map.

        Returns:
                int: The row index corresponding to the given xyz-coordinate.
        """
        return z * self.xdim * self.ydim + y * self.xdim + x

    def coordinate(self, rowix):
        """
        Convert from a row index (or an array of them) to xyz-coordinates.

        Args:
                rowix (int | np.ndarray): 1d index (or indices) of the nodes of interest.

        Returns:
                tuple: (x, y, z) coordinates, ints for a scalar index or arrays for an array of indices.
        """
        plane = self.xdim * self.ydim
        z = rowix // plane
        remainder = rowix % plane
        y = remainder // self.xdim
        x = remainder % self.xdim
        if np.ndim(rowix) == 0:
            return int(x), int(y), int(z)
        return x, y, z

    def initialize(self):
        """Fill every node weight with a uniform random value in [0, 1)."""
        self.lattice[:] = self.rng.uniform(0.0, 1.0, self.lattice.shape)
        print(f"Network initialized with {self.number_of_nodes} neurons", flush=True)

    def decay_schedule(self, epoch: int, epochs: int) -> tuple[float, float]:
        """Learning rate and neighborhood radius at a given epoch.

        Both decay as exp(-epoch / tau) with tau = epochs / 3; the radius starts
        at half the largest lattice dimension and the learning rate at 0.5.

        Args:
                epoch (int): Current epoch, starting at 0.
                epochs (int): Total number of epochs.

        Returns:
                tuple[float, float]: (learning_rate, neighborhood_radius)
        """
        if epochs <= 0:
            raise ValueError(f"decay_schedule: epochs must be positive, got {epochs}")

        tau = epochs / 3.0
        decay = np.exp(-epoch / tau)
        learning_rate = 0.5 * decay
        radius = max(self.xdim, self.ydim, self.zdim) / 2.0 * decay
        return float(learning_rate), float(radius)

    def train(self, dataset: list[Sample], epochs: int):
        """Train the lattice on a labeled dataset, then label every node.

        Each epoch visits the samples in a fresh random order; the dataset
        itself is left untouched. After the last epoch the nodes get their
        dominant class, prototype image and display color.

        Args:
                dataset (list[Sample]): Training samples.
                epochs (int): Number of passes over the dataset. Nothing happens if it is not positive.
        """
        if epochs <= 0:
            print(f"Number of epochs is {epochs}, skipping training", flush=True)
            return

        print(f"Starting training for {epochs} epochs...", flush=True)

        if len(dataset) > 0:
            self.dataset_type = dataset[0].dataset_type
            print(f"Training on {self.dataset_type.display_name} dataset", flush=True)

        data_array = self.stack_features(dataset)
        indices = np.arange(len(dataset))

        for epoch in range(epochs):
            self.epoch = epoch
            learning_rate, radius = self.decay_schedule(epoch, epochs)

            order = indices.copy()
            self.rng.shuffle(order)

            for i in order:
                self.train_step(data_array[i], learning_rate, radius)

            if epoch % 10 == 0 or epoch == epochs - 1:
                print(
                    f"Epoch {epoch}/{epochs} - LR: {learning_rate:.6f} - Radius: {radius:.6f}",
                    flush=True,
                )

        self.classify_neurons(dataset)
        self.find_prototype_images(dataset)
        self.update_colors()

        print("Training completed!", flush=True)

    def train_step(self, features, learning_rate: float, radius: float) -> int:
        """Move the BMU and its grid neighborhood towards one input vector.

        Args:
                features (np.ndarray | Sample): The input vector, or a Sample carrying it.
                learning_rate (float): Step size for this update.
                radius (float): Neighborhood radius on the grid.

        Returns:
                int: index of the best matching unit.
        """
        if isinstance(features, Sample):
            features = features.pixels
        features = np.asarray(features, dtype=float)

        bmu, _ = self.best_match(self.lattice, features)
        self.update_neighborhood(
            self.lattice, self.m3Ds, bmu, features, learning_rate, radius
        )
        self.activation_count[bmu] += 1
        return bmu

    @staticmethod
    @njit()
    def best_match(lattice: np.ndarray, obs: np.ndarray):
        """
        Find the node closest (Euclidean) to one observation.

        Nodes are scanned in row order with a strict less-than comparison, so
        ties go to the lowest index.

        Args:
                lattice (np.ndarray): weight values of the lattice, [N, F]
                obs (np.ndarray): one observation, [F]

        Returns:
                tuple[int, float]: index of the best matching node and its distance to obs
        """
        best_index = 0
        min_distance = np.inf
        for i in range(lattice.shape[0]):
            s = 0.0
            for k in range(lattice.shape[1]):
                diff = obs[k] - lattice[i, k]
                s += diff * diff
            if s < min_distance:
                min_distance = s
                best_index = i
        return best_index, np.sqrt(min_distance)

    @staticmethod
    @njit(parallel=True)
    def best_match_all(lattice: np.ndarray, data: np.ndarray):
        """
        Best matching node and distance for every row of data.

        Args:
                lattice (np.ndarray): weight values of the lattice, [N, F]
                data (np.ndarray): observations, [M, F]

        Returns:
                tuple[np.ndarray, np.ndarray]: BMU index and distance per observation
        """
        bmus = np.zeros(data.shape[0], dtype=np.int64)
        distances = np.zeros(data.shape[0])
        for j in prange(data.shape[0]):
            best_index = 0
            min_distance = np.inf
            for i in range(lattice.shape[0]):
                s = 0.0
                for k in range(lattice.shape[1]):
                    diff = data[j, k] - lattice[i, k]
                    s += diff * diff
                if s < min_distance:
                    min_distance = s
                    best_index = i
            bmus[j] = best_index
            distances[j] = np.sqrt(min_distance)
        return bmus, distances

    @staticmethod
    @njit(parallel=True)
    def update_neighborhood(
        lattice: np.ndarray,
        m3Ds: np.ndarray,
        index_bmu: int,
        obs: np.ndarray,
        alpha: float,
        radius: float,
    ):
        """Apply the Gaussian-weighted update to every node within radius of the BMU.

        Each node only reads obs and writes its own row, so the loop runs in
        parallel across nodes.

        Args:
                lattice (np.ndarray): weight values of the lattice, updated in place
                m3Ds (np.ndarray): Lattice coordinate of each node.
                index_bmu (int): The index of the BMU node on the lattice.
                obs (np.ndarray): The input vector.
                alpha (float): The learning rate.
                radius (float): The neighborhood radius, in grid units.
        """
        bx = m3Ds[index_bmu, 0]
        by = m3Ds[index_bmu, 1]
        bz = m3Ds[index_bmu, 2]
        for i in prange(lattice.shape[0]):
            dx = m3Ds[i, 0] - bx
            dy = m3Ds[i, 1] - by
            dz = m3Ds[i, 2] - bz
            dist = np.sqrt(dx * dx + dy * dy + dz * dz)
            if dist > radius:
                continue

            if radius <= 0:
                h = 1.0 if dist == 0 else 0.0
            else:
                h = np.exp(-(dist * dist) / (2 * radius * radius))

            for k in range(lattice.shape[1]):
                lattice[i, k] += alpha * h * (obs[k] - lattice[i, k])

    @staticmethod
    def neighborhood_function(distance: float, radius: float) -> float:
        """Gaussian influence of a node at a given grid distance from the BMU."""
        if radius <= 0:
            return 1.0 if distance == 0 else 0.0
        return float(np.exp(-(distance**2) / (2 * radius**2)))

    def calculate_distance(self, features, index: int) -> float:
        """Euclidean distance between an input vector and the weights of node `index`."""
        diff = np.asarray(features, dtype=float) - self.lattice[index]
        return float(np.sqrt(np.sum(diff**2)))

    def calculate_spatial_distance(self, index_a: int, index_b: int) -> float:
        """Euclidean distance between two nodes in grid coordinates."""
        diff = self.m3Ds[index_a] - self.m3Ds[index_b]
        return float(np.sqrt(np.sum(diff**2)))

    def get_neighbors(self, index: int, radius: float) -> list[int]:
        """All nodes whose grid distance to node `index` is at most radius (the node itself included)."""
        dist = np.sqrt(np.sum((self.m3Ds - self.m3Ds[index]) ** 2, axis=1))
        return [int(i) for i in np.flatnonzero(dist <= radius)]

    def stack_features(self, dataset: list[Sample]) -> np.ndarray:
        if len(dataset) == 0:
            return np.zeros((0, self.input_size))
        return np.asarray([sample.pixels for sample in dataset], dtype=float)

    def classify_neurons(self, dataset: list[Sample]):
        """
        Give every node the most frequent label among the samples it wins.

        Ties go to the lowest label. Nodes that never win keep the
        unclassified label (-1).

        Args:
                dataset (list[Sample]): The training samples.
        """
        print("Classifying neurons...", flush=True)
        self.dominant_class[:] = UNCLASSIFIED
        if len(dataset) == 0:
            return

        bmus, _ = self.best_match_all(self.lattice, self.stack_features(dataset))
        labels = np.array([sample.label for sample in dataset], dtype=np.int64)

        counts = {}
        for node, label in zip(bmus, labels):
            node_counts = counts.setdefault(int(node), {})
            node_counts[int(label)] = node_counts.get(int(label), 0) + 1

        for node, node_counts in counts.items():
            best_label = UNCLASSIFIED
            best_count = 0
            for label in sorted(node_counts):
                if node_counts[label] > best_count:
                    best_count = node_counts[label]
                    best_label = label
            self.dominant_class[node] = best_label

        classified = np.count_nonzero(self.dominant_class != UNCLASSIFIED)
        print(f"{classified}/{self.number_of_nodes} neurons classified", flush=True)

    def find_prototype_images(self, dataset: list[Sample]):
        """
        Store, for every node, the sample it wins that lies closest to its weights.

        Args:
                dataset (list[Sample]): The training samples.
        """
        print("Finding prototype images...", flush=True)
        self.prototypes[:] = 0.0
        if len(dataset) == 0:
            return

        data_array = self.stack_features(dataset)
        bmus, distances = self.best_match_all(self.lattice, data_array)

        min_distances = np.full(self.number_of_nodes, np.inf)
        for j in range(len(bmus)):
            node = bmus[j]
            if distances[j] < min_distances[node]:
                min_distances[node] = distances[j]
                self.prototypes[node] = data_array[j]

    def update_colors(self):
        """Color every node by its dominant class; unclassified nodes are gray."""
        palette = palette_for(self.dataset_type)
        for i in range(self.number_of_nodes):
            label = self.dominant_class[i]
            if 0 <= label < len(palette):
                self.colors[i] = palette[label]
            else:
                self.colors[i] = UNCLASSIFIED_COLOR

    def classify_sample(self, sample: Sample) -> ClassificationResult:
        """Predict a label for one sample from its best matching node."""
        features = np.asarray(sample.pixels, dtype=float)
        bmu, distance = self.best_match(self.lattice, features)
        return ClassificationResult(
            predicted_label=int(self.dominant_class[bmu]),
            true_label=int(sample.label),
            confidence=float(distance),
        )

    def evaluate_on_dataset(
        self, dataset: list[Sample], number_of_classes: int = 10
    ) -> MetricsReport:
        """
        Classify every sample of a test set and summarize the results.

        Args:
                dataset (list[Sample]): Test samples.
                number_of_classes (int, optional): Size of the confusion matrix. Defaults to 10.

        Returns:
                MetricsReport: accuracy, confusion matrix and precision/recall/F1.
        """
        print("Evaluating network on test dataset...", flush=True)
        results = [self.classify_sample(sample) for sample in dataset]

        dataset_type = dataset[0].dataset_type if len(dataset) > 0 else self.dataset_type
        report = evaluate_classification(results, dataset_type, number_of_classes)

        print("Evaluation completed!", flush=True)
        return report
