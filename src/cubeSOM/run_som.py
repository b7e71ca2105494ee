## Script to load a labeled image dataset, train a 3D SOM on it and report
## classification metrics on a held-out test set

import sys
import argparse

from sklearn.preprocessing import MinMaxScaler

from .datasets import (
    DatasetType,
    get_all_label_names,
    load_h5_dataset,
    load_idx_dataset,
    load_npy_dataset,
)
from .metrics import print_report, save_report_to_file


def load_dataset(
    data_format: str,
    features_path: str,
    labels_path: str,
    dataset_type: DatasetType,
    max_samples: int = -1,
    scaler: MinMaxScaler = None,
) -> list:
    """Dispatch to the reader for a given file format.

    Args:
        data_format (str): one of "idx", "npy" or "h5"
        features_path (str): image/feature file (or the HDF5 file holding both arrays)
        labels_path (str): label file, ignored for "h5"
        dataset_type (DatasetType): tag attached to the samples
        max_samples (int, optional): Keep at most this many samples; -1 keeps all. Defaults to -1.
        scaler (MinMaxScaler, optional): feature scaler for "npy" and "h5", fitted on first use
                and reused afterwards. Defaults to None, a fresh scaler per file.

    Returns:
        list[Sample]: the loaded samples
    """
    if data_format == "idx":
        return load_idx_dataset(features_path, labels_path, dataset_type, max_samples)
    elif data_format == "npy":
        return load_npy_dataset(features_path, labels_path, dataset_type, max_samples, scaler)
    elif data_format == "h5":
        return load_h5_dataset(features_path, dataset_type, max_samples, scaler)
    sys.exit(f"Unknown data format '{data_format}', use idx, npy or h5")


def parse_args(argv=None):
    """CLI argument parser for run_som.py script."""
    parser = argparse.ArgumentParser(description="3D SOM classifier")
    parser.add_argument(
        "--format",
        type=str,
        dest="data_format",
        default="idx",
        choices=["idx", "npy", "h5"],
        help="Format of the dataset files",
    )
    parser.add_argument(
        "--dataset",
        type=str,
        dest="dataset",
        default="mnist",
        choices=[t.value for t in DatasetType],
        help="Dataset type, selects label names and colors",
    )
    parser.add_argument("--train_features", type=str, dest="train_features", required=True)
    parser.add_argument("--train_labels", type=str, dest="train_labels", default=None)
    parser.add_argument("--test_features", type=str, dest="test_features", required=True)
    parser.add_argument("--test_labels", type=str, dest="test_labels", default=None)
    parser.add_argument("--xdim", type=int, dest="xdim", default=10, help="X dimension of the lattice")
    parser.add_argument("--ydim", type=int, dest="ydim", default=10, help="Y dimension of the lattice")
    parser.add_argument("--zdim", type=int, dest="zdim", default=10, help="Z dimension of the lattice")
    parser.add_argument("--epochs", type=int, dest="epochs", default=50, help="Number of training epochs")
    parser.add_argument(
        "--seed",
        type=int,
        dest="seed",
        default=None,
        help="Random seed, defaults to system entropy",
    )
    parser.add_argument(
        "--max_train",
        type=int,
        dest="max_train",
        default=-1,
        help="Maximum number of training samples, -1 for all",
    )
    parser.add_argument(
        "--max_test",
        type=int,
        dest="max_test",
        default=-1,
        help="Maximum number of test samples, -1 for all",
    )
    parser.add_argument(
        "--report",
        type=str,
        dest="report",
        default=None,
        help="Path of the tab-separated report file",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        dest="plot",
        help="Open the 3D lattice viewer after evaluation",
    )

    return parser.parse_args(argv)


def main(argv=None):
    from .som import Lattice

    args = parse_args(argv)

    if args.data_format != "h5" and (args.train_labels is None or args.test_labels is None):
        sys.exit("Cannot run, label files are required for idx and npy datasets.")

    dataset_type = DatasetType(args.dataset)

    # fitted on the training features, then applied unchanged to the test features
    scaler = MinMaxScaler(clip=True)

    train_set = load_dataset(
        args.data_format,
        args.train_features,
        args.train_labels,
        dataset_type,
        args.max_train,
        scaler,
    )
    test_set = load_dataset(
        args.data_format,
        args.test_features,
        args.test_labels,
        dataset_type,
        args.max_test,
        scaler,
    )
    if len(train_set) == 0:
        sys.exit("Cannot run, the training set is empty.")

    input_size = len(train_set[0].pixels)
    print(
        f"Lattice {args.xdim}x{args.ydim}x{args.zdim}, input size {input_size}, "
        f"{len(train_set)} training / {len(test_set)} test samples",
        flush=True,
    )

    som = Lattice(args.xdim, args.ydim, args.zdim, input_size, seed=args.seed)
    som.initialize()
    som.train(train_set, args.epochs)

    report = som.evaluate_on_dataset(test_set)
    class_names = get_all_label_names(report.dataset_type)
    print_report(report, class_names)

    if args.report is not None:
        save_report_to_file(report, class_names, args.report)

    if args.plot:
        from .plot_lattice import LatticeViewer

        LatticeViewer(som).show()

    return report


if __name__ == "__main__":
    main()
