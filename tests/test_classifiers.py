import pytest

from vmconsolidation.classifiers import (
    InterQuartileRange, MedianAbsoluteDeviation, StaticThreshold, get_classifier,
)


def test_static_threshold_is_strict(make_host, make_vm):
    classifier = StaticThreshold(0.8)
    host = make_host("H1")
    vm = make_vm("A", 800, host=host)
    assert not classifier.is_over_utilized(host)

    vm.mips = 850
    assert classifier.is_over_utilized(host)


def test_classification_is_repeatable(make_host, make_vm):
    classifier = StaticThreshold(0.5)
    host = make_host("H1")
    make_vm("A", 700, host=host)
    assert [classifier.is_over_utilized(host) for _ in range(3)] == [True, True, True]
    assert host.utilization_of_cpu() == pytest.approx(0.7)


def test_mad_falls_back_while_history_is_short(make_host):
    host = make_host("H1")
    host.utilization_history.extend([0.5] * 5)
    classifier = MedianAbsoluteDeviation(2.5, fallback=StaticThreshold(0.6))
    assert classifier.threshold(host) == 0.6


def test_mad_threshold(make_host):
    host = make_host("H1")
    host.utilization_history.extend([0.4, 0.6] * 6)
    classifier = MedianAbsoluteDeviation(2.5)
    assert classifier.threshold(host) == pytest.approx(0.75)


def test_mad_flat_history_allows_full_load(make_host, make_vm):
    host = make_host("H1")
    host.utilization_history.extend([0.5] * 12)
    make_vm("A", 950, host=host)
    classifier = MedianAbsoluteDeviation(2.5)
    assert classifier.threshold(host) == pytest.approx(1.0)
    assert not classifier.is_over_utilized(host)


def test_iqr_threshold(make_host, make_vm):
    host = make_host("H1")
    host.utilization_history.extend([0.2] * 6 + [0.6] * 6)
    make_vm("A", 100, host=host)
    classifier = InterQuartileRange(1.0)
    assert classifier.threshold(host) == pytest.approx(0.6)
    assert not classifier.is_over_utilized(host)


def test_get_classifier():
    assert isinstance(get_classifier("thr", 0.9), StaticThreshold)
    assert get_classifier("thr", 0.9).utilization_threshold == 0.9
    assert isinstance(get_classifier("mad"), MedianAbsoluteDeviation)
    assert isinstance(get_classifier("iqr", 1.5), InterQuartileRange)
    with pytest.raises(ValueError):
        get_classifier("lr")
