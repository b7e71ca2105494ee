import pytest
import numpy as np
import os

from cubeSOM.datasets import DatasetType
from cubeSOM.metrics import MetricsReport
from cubeSOM.run_som import load_dataset, parse_args, main


def make_idx_pair(directory, name, number_of_samples, seed):
    """Write 4x4 images: class 0 lights up the left half, class 1 the right half."""
    rng = np.random.default_rng(seed)
    labels = rng.integers(0, 2, number_of_samples).astype(np.uint8)
    images = np.zeros((number_of_samples, 4, 4), dtype=np.uint8)
    for i, label in enumerate(labels):
        columns = slice(0, 2) if label == 0 else slice(2, 4)
        images[i, :, columns] = rng.integers(200, 256, (4, 2))

    images_path = os.path.join(directory, f"{name}-images-idx3-ubyte")
    labels_path = os.path.join(directory, f"{name}-labels-idx1-ubyte")
    with open(images_path, "wb") as f:
        f.write(np.array([2051, number_of_samples, 4, 4], dtype=">i4").tobytes())
        f.write(images.tobytes())
    with open(labels_path, "wb") as f:
        f.write(np.array([2049, number_of_samples], dtype=">i4").tobytes())
        f.write(labels.tobytes())
    return images_path, labels_path


@pytest.fixture
def idx_files(tmp_path):
    train = make_idx_pair(str(tmp_path), "train", 40, seed=1)
    test = make_idx_pair(str(tmp_path), "test", 20, seed=2)
    return train, test


def test_parse_args():
    args = parse_args(["--train_features", "a", "--test_features", "b"])
    assert args.data_format == "idx"
    assert args.dataset == "mnist"
    assert (args.xdim, args.ydim, args.zdim) == (10, 10, 10)
    assert args.seed is None
    assert args.report is None
    assert args.plot is False


def test_load_dataset(idx_files):
    (train_images, train_labels), _ = idx_files
    samples = load_dataset("idx", train_images, train_labels, DatasetType.MNIST, 10)
    assert len(samples) == 10
    assert len(samples[0].pixels) == 16

    with pytest.raises(SystemExit):
        load_dataset("csv", train_images, train_labels, DatasetType.MNIST)


def test_main_scales_test_set_like_training_set(tmp_path, monkeypatch):
    rng = np.random.default_rng(3)
    train_features = rng.random((20, 4)) * 200.0
    train_features[0] = 0.0
    train_features[1] = 200.0
    np.save(tmp_path / "train.npy", train_features)
    np.save(tmp_path / "train_labels.npy", rng.integers(0, 2, 20))
    np.save(tmp_path / "test.npy", np.array([[0.0, 0.0, 0.0, 0.0], [20.0, 20.0, 20.0, 20.0]]))
    np.save(tmp_path / "test_labels.npy", np.array([0, 1]))

    seen = {}
    original_load = load_dataset

    def recording_load(*args, **kwargs):
        samples = original_load(*args, **kwargs)
        seen[args[1]] = samples
        return samples

    monkeypatch.setattr("cubeSOM.run_som.load_dataset", recording_load)
    main(
        [
            "--format", "npy",
            "--train_features", str(tmp_path / "train.npy"),
            "--train_labels", str(tmp_path / "train_labels.npy"),
            "--test_features", str(tmp_path / "test.npy"),
            "--test_labels", str(tmp_path / "test_labels.npy"),
            "--xdim", "2",
            "--ydim", "2",
            "--zdim", "1",
            "--epochs", "1",
            "--seed", "0",
        ]
    )
    test_samples = seen[str(tmp_path / "test.npy")]
    assert np.allclose(test_samples[0].pixels, 0.0)
    assert np.allclose(test_samples[1].pixels, 0.1)


def test_missing_labels_exit(idx_files):
    (train_images, _), (test_images, _) = idx_files
    with pytest.raises(SystemExit):
        main(["--train_features", train_images, "--test_features", test_images])


def test_main(idx_files, tmp_path):
    (train_images, train_labels), (test_images, test_labels) = idx_files
    report_path = tmp_path / "report.txt"
    report = main(
        [
            "--train_features", train_images,
            "--train_labels", train_labels,
            "--test_features", test_images,
            "--test_labels", test_labels,
            "--xdim", "2",
            "--ydim", "2",
            "--zdim", "2",
            "--epochs", "3",
            "--seed", "0",
            "--report", str(report_path),
        ]
    )
    assert isinstance(report, MetricsReport)
    assert 0.0 <= report.accuracy <= 1.0
    assert report.confusion_matrix.shape == (10, 10)
    assert report_path.is_file()
    assert report_path.read_text().startswith("Classification Report - MNIST")


# Run the tests
if __name__ == "__main__":
    pytest.main()
