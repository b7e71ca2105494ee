import pytest
import numpy as np

from cubeSOM.datasets import DatasetType, get_all_label_names
from cubeSOM.metrics import (
    ClassificationResult,
    calculate_accuracy,
    calculate_confusion_matrix,
    calculate_precision_recall_f1,
    evaluate_classification,
    format_report,
    print_report,
    save_report_to_file,
)


def result(predicted, true, confidence=0.0):
    return ClassificationResult(predicted_label=predicted, true_label=true, confidence=confidence)


@pytest.fixture
def two_class_results():
    return [result(1, 1), result(0, 1)]


def test_empty_results():
    report = evaluate_classification([], DatasetType.MNIST, 10)
    assert report.accuracy == 0.0
    assert report.confusion_matrix.shape == (10, 10)
    assert not report.confusion_matrix.any()
    assert not report.precision_per_class.any()
    assert not report.recall_per_class.any()
    assert not report.f1_per_class.any()
    assert report.average_precision == 0.0
    assert report.average_recall == 0.0
    assert report.average_f1 == 0.0
    assert report.excluded == 0


def test_confusion_matrix_empty():
    matrix = calculate_confusion_matrix([], 4)
    assert matrix.shape == (4, 4)
    assert np.array_equal(matrix, np.zeros((4, 4)))


def test_two_class_scenario(two_class_results):
    report = evaluate_classification(two_class_results, DatasetType.MNIST, 2)
    assert report.confusion_matrix.tolist() == [[0, 0], [1, 1]]
    assert report.precision_per_class[1] == pytest.approx(1.0)
    assert report.recall_per_class[1] == pytest.approx(0.5)
    assert report.f1_per_class[1] == pytest.approx(2.0 / 3.0)
    assert report.precision_per_class[0] == 0.0
    assert report.recall_per_class[0] == 0.0
    assert report.f1_per_class[0] == 0.0
    assert report.accuracy == pytest.approx(0.5)

    # class 0 has no support but still counts in the macro averages
    assert report.average_precision == pytest.approx(0.5)
    assert report.average_recall == pytest.approx(0.25)
    assert report.average_f1 == pytest.approx(1.0 / 3.0)


def test_out_of_range_labels():
    results = [result(2, 2), result(0, 2), result(2, 2), result(1, 2)]
    report = evaluate_classification(results, DatasetType.MNIST, 2)
    assert not report.confusion_matrix.any()
    assert report.accuracy == pytest.approx(0.5)
    assert report.excluded == 4


def test_unclassified_prediction_is_excluded():
    results = [result(-1, 0), result(0, 0)]
    matrix = calculate_confusion_matrix(results, 3)
    assert matrix.sum() == 1
    assert matrix[0, 0] == 1
    assert calculate_accuracy(results) == pytest.approx(0.5)


def test_precision_recall_f1():
    matrix = np.array([[5, 1, 0], [2, 3, 0], [0, 0, 0]])
    precision, recall, f1 = calculate_precision_recall_f1(matrix)
    assert precision[0] == pytest.approx(5 / 7)
    assert precision[1] == pytest.approx(3 / 4)
    assert recall[0] == pytest.approx(5 / 6)
    assert recall[1] == pytest.approx(3 / 5)
    p, r = 5 / 7, 5 / 6
    assert f1[0] == pytest.approx(2 * p * r / (p + r))
    assert precision[2] == 0.0 and recall[2] == 0.0 and f1[2] == 0.0


def test_format_report(two_class_results):
    report = evaluate_classification(two_class_results, DatasetType.FASHION_MNIST, 10)
    names = get_all_label_names(DatasetType.FASHION_MNIST)
    text = format_report(report, names)
    assert "Dataset: Fashion-MNIST" in text
    assert "Overall Accuracy: 50.0000%" in text
    assert "True\\Pred" in text
    assert "T-shirt" in text
    assert "Ankle boot" in text
    assert "AVERAGE" in text


def test_short_class_names_are_padded(tmp_path):
    results = [result(0, 0), result(2, 2), result(2, 1)]
    report = evaluate_classification(results, DatasetType.MNIST, 3)

    text = format_report(report, ["zero"])
    lines = text.splitlines()
    start = lines.index("=== CONFUSION MATRIX ===")
    header, rows = lines[start + 1], lines[start + 2 : start + 5]
    assert header.split() == ["True\\Pred", "zero", "1", "2"]
    assert all(len(row) == len(header) for row in rows)
    assert rows[2].split() == ["2", "0", "0", "1"]

    table = lines.index("=== PER-CLASS METRICS ===")
    names = [line.split()[0] for line in lines[table + 3 : table + 6]]
    assert names == ["zero", "1", "2"]

    file_path = tmp_path / "report.txt"
    save_report_to_file(report, ["zero"], str(file_path))
    file_lines = file_path.read_text().splitlines()
    table = file_lines.index("Class\tPrecision\tRecall\tF1-Score")
    assert [line.split("\t")[0] for line in file_lines[table + 1 :]] == ["zero", "1", "2"]


def test_print_report(two_class_results, capsys):
    report = evaluate_classification(two_class_results, DatasetType.MNIST, 2)
    print_report(report, ["0", "1"])
    captured = capsys.readouterr()
    assert "CLASSIFICATION METRICS REPORT" in captured.out
    assert "Dataset: MNIST" in captured.out


def test_save_report_to_file(two_class_results, tmp_path):
    report = evaluate_classification(two_class_results, DatasetType.MNIST, 2)
    file_path = tmp_path / "report.txt"
    save_report_to_file(report, ["0", "1"], str(file_path))
    assert file_path.is_file()

    lines = file_path.read_text().splitlines()
    assert lines[0] == "Classification Report - MNIST"
    assert lines[1] == "Overall Accuracy: 50.0%"

    start = lines.index("Confusion Matrix:")
    assert lines[start + 1] == "0\t0\t"
    assert lines[start + 2] == "1\t1\t"

    header = lines.index("Class\tPrecision\tRecall\tF1-Score")
    rows = [line.split("\t") for line in lines[header + 1 :]]
    assert [row[0] for row in rows] == ["0", "1"]
    assert float(rows[1][1]) == pytest.approx(1.0)
    assert float(rows[1][2]) == pytest.approx(0.5)
    assert float(rows[1][3]) == pytest.approx(2.0 / 3.0)


if __name__ == "__main__":
    pytest.main()
