## Classification metrics for a labeled SOM: accuracy, confusion matrix,
## per-class and macro precision/recall/F1, plus text and file reports.

from dataclasses import dataclass

import numpy as np

from .datasets import DatasetType


@dataclass
class ClassificationResult:
    predicted_label: int
    true_label: int
    confidence: float  # distance to the BMU, lower means a tighter match


@dataclass
class MetricsReport:
    accuracy: float
    confusion_matrix: np.ndarray
    precision_per_class: np.ndarray
    recall_per_class: np.ndarray
    f1_per_class: np.ndarray
    average_precision: float
    average_recall: float
    average_f1: float
    dataset_type: DatasetType = DatasetType.MNIST
    excluded: int = 0  # results left out of the confusion matrix


def calculate_accuracy(results: list[ClassificationResult]) -> float:
    """Fraction of correct predictions over all results, labels in range or not."""
    if len(results) == 0:
        return 0.0
    correct = sum(1 for r in results if r.predicted_label == r.true_label)
    return correct / len(results)


def calculate_confusion_matrix(
    results: list[ClassificationResult], number_of_classes: int
) -> np.ndarray:
    """
    Count (true, predicted) label pairs.

    Args:
        results (list[ClassificationResult]): classification outcomes
        number_of_classes (int): N, the size of the matrix

    Returns:
        np.ndarray: N x N int matrix, rows are true labels and columns predicted labels.
            Results with either label outside [0, N) are not counted.
    """
    matrix = np.zeros((number_of_classes, number_of_classes), dtype=np.int64)
    for r in results:
        if 0 <= r.true_label < number_of_classes and 0 <= r.predicted_label < number_of_classes:
            matrix[r.true_label, r.predicted_label] += 1
    return matrix


def calculate_precision_recall_f1(
    confusion_matrix: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Per-class precision, recall and F1 score from a confusion matrix.

    A metric whose denominator is zero is reported as 0.

    Args:
        confusion_matrix (np.ndarray): N x N matrix, rows true and columns predicted

    Returns:
        tuple[np.ndarray, np.ndarray, np.ndarray]: precision, recall, f1, each of length N
    """
    matrix = np.asarray(confusion_matrix, dtype=float)
    true_positives = np.diag(matrix)
    predicted_positives = matrix.sum(axis=0)
    actual_positives = matrix.sum(axis=1)

    precision = np.divide(
        true_positives,
        predicted_positives,
        out=np.zeros_like(true_positives),
        where=predicted_positives > 0,
    )
    recall = np.divide(
        true_positives,
        actual_positives,
        out=np.zeros_like(true_positives),
        where=actual_positives > 0,
    )
    p_plus_r = precision + recall
    f1 = np.divide(
        2 * precision * recall,
        p_plus_r,
        out=np.zeros_like(true_positives),
        where=p_plus_r > 0,
    )
    return precision, recall, f1


def evaluate_classification(
    results: list[ClassificationResult],
    dataset_type: DatasetType = DatasetType.MNIST,
    number_of_classes: int = 10,
) -> MetricsReport:
    """
    Build a full metrics report from a batch of classification results.

    Accuracy is computed over every result, while the confusion matrix (and
    therefore precision/recall/F1) only counts results whose labels are both
    in [0, number_of_classes). The number of results left out is kept in
    MetricsReport.excluded.

    Args:
        results (list[ClassificationResult]): classification outcomes
        dataset_type (DatasetType, optional): dataset the results come from. Defaults to MNIST.
        number_of_classes (int, optional): Defaults to 10.

    Returns:
        MetricsReport: the report
    """
    matrix = calculate_confusion_matrix(results, number_of_classes)
    precision, recall, f1 = calculate_precision_recall_f1(matrix)

    # macro averages, classes without support count as 0
    if number_of_classes > 0:
        average_precision = float(np.mean(precision))
        average_recall = float(np.mean(recall))
        average_f1 = float(np.mean(f1))
    else:
        average_precision = average_recall = average_f1 = 0.0

    return MetricsReport(
        accuracy=calculate_accuracy(results),
        confusion_matrix=matrix,
        precision_per_class=precision,
        recall_per_class=recall,
        f1_per_class=f1,
        average_precision=average_precision,
        average_recall=average_recall,
        average_f1=average_f1,
        dataset_type=dataset_type,
        excluded=len(results) - int(matrix.sum()),
    )


def pad_class_names(class_names: list[str], number_of_classes: int) -> list[str]:
    """Exactly number_of_classes names; missing ones fall back to the class index."""
    names = list(class_names[:number_of_classes])
    names += [str(i) for i in range(len(names), number_of_classes)]
    return names


def format_confusion_matrix(matrix: np.ndarray, class_names: list[str]) -> str:
    class_names = pad_class_names(class_names, len(matrix))
    corner = "True\\Pred"
    lines = ["=== CONFUSION MATRIX ==="]
    header = f"{corner:>12}" + "".join(f"{name[:7]:>8}" for name in class_names)
    lines.append(header)
    for i in range(len(matrix)):
        lines.append(f"{class_names[i][:11]:>12}" + "".join(f"{count:>8}" for count in matrix[i]))
    return "\n".join(lines)


def format_report(report: MetricsReport, class_names: list[str]) -> str:
    """Render a report as the multi-line text block printed after evaluation."""
    class_names = pad_class_names(class_names, len(report.precision_per_class))
    rule = "=" * 40
    lines = [
        rule,
        "       CLASSIFICATION METRICS REPORT",
        rule,
        f"Dataset: {report.dataset_type.display_name}",
        f"Overall Accuracy: {report.accuracy * 100:.4f}%",
    ]
    if report.excluded > 0:
        lines.append(f"Results with out-of-range labels: {report.excluded}")
    lines.append("")
    lines.append(format_confusion_matrix(report.confusion_matrix, class_names))
    lines.append("")
    lines.append("=== PER-CLASS METRICS ===")
    lines.append(f"{'Class':>15}{'Precision':>12}{'Recall':>12}{'F1-Score':>12}")
    lines.append("-" * 51)

    for i in range(len(report.precision_per_class)):
        lines.append(
            f"{class_names[i][:14]:>15}"
            f"{report.precision_per_class[i]:>12.4f}"
            f"{report.recall_per_class[i]:>12.4f}"
            f"{report.f1_per_class[i]:>12.4f}"
        )

    lines.append("-" * 51)
    lines.append(
        f"{'AVERAGE':>15}"
        f"{report.average_precision:>12.4f}"
        f"{report.average_recall:>12.4f}"
        f"{report.average_f1:>12.4f}"
    )
    lines.append(rule)
    return "\n".join(lines)


def print_report(report: MetricsReport, class_names: list[str]):
    print("\n" + format_report(report, class_names) + "\n", flush=True)


def save_report_to_file(report: MetricsReport, class_names: list[str], file_path: str):
    """
    Write a report as tab-separated text.

    The file holds a header with the dataset name and accuracy, the raw
    confusion matrix (one tab-separated row per true label) and a
    Class/Precision/Recall/F1-Score table.

    Args:
        report (MetricsReport): the report to save
        class_names (list[str]): display name of each class
        file_path (str): output path, overwritten if it exists
    """
    class_names = pad_class_names(class_names, len(report.precision_per_class))
    with open(file_path, "w") as f:
        f.write(f"Classification Report - {report.dataset_type.display_name}\n")
        f.write(f"Overall Accuracy: {report.accuracy * 100}%\n")
        f.write("\n")

        f.write("Confusion Matrix:\n")
        for row in report.confusion_matrix:
            f.write("".join(f"{count}\t" for count in row) + "\n")

        f.write("\nPer-class metrics:\n")
        f.write("Class\tPrecision\tRecall\tF1-Score\n")
        for i in range(len(report.precision_per_class)):
            f.write(
                f"{class_names[i]}\t"
                f"{report.precision_per_class[i]}\t"
                f"{report.recall_per_class[i]}\t"
                f"{report.f1_per_class[i]}\n"
            )
    print(f"Report saved to: {file_path}", flush=True)
