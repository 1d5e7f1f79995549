import logging

import pytest

from conftest import InMemoryObjectStore, make_kpi, make_service, stdev_row
from threshold_tuner import recommend
from threshold_tuner.analysis import AnalysisRunner
from threshold_tuner.config import TunerConfig
from threshold_tuner.errors import ConfigParseError, ExecutionError, PersistError, SearchError
from threshold_tuner.recommend import ThresholdRecommendationWorkflow


def _workflow(config, store, search_client, **kwargs):
    kwargs.setdefault("latest_start_times", {7: 1000, 14: 2000, 30: 3000, 60: 4000})
    return ThresholdRecommendationWorkflow(config, store, search_client, **kwargs)


def _kpis(store, key):
    return {kpi["_key"]: kpi for kpi in store.saved(key).kpis()}


def test_recommend_end_to_end(config, store, mock_search_client, monkeypatch):
    runners = []

    def capture_runner(*args, **kwargs):
        runners.append(AnalysisRunner(*args, **kwargs))
        return runners[-1]

    monkeypatch.setattr(recommend, "AnalysisRunner", capture_runner)
    mock_search_client.execute.return_value = [stdev_row("k-err", "svc1"), stdev_row("k-net", "svc1", mean="100")]
    workflow = _workflow(config, store, mock_search_client, services=["svc1"], kpis=["err*", "network*"])

    workflow.execute()

    (call,) = mock_search_client.execute.call_args_list
    job = call.args[0]
    assert 'itsi_kpi_id IN ("k-err","k-net")' in job.query
    assert job.earliest_time == "1700000000"

    (runner,) = runners
    (batch,) = runner.batches
    assert len(batch) == 1
    (svc,) = runner.results
    assert svc.key == "svc1"
    assert set(runner.results[svc]) == {"k-err", "k-net"}

    kpis = _kpis(store, "svc1")
    assert kpis["k-err"]["aggregate_thresholds"]["thresholdLevels"][0]["thresholdValue"] == 16.0
    assert kpis["k-net"]["aggregate_thresholds"]["thresholdLevels"][0]["thresholdValue"] == 106.0
    assert kpis["k-net"]["adaptive_thresholds_is_enabled"] is True
    assert kpis["k-cpu"]["aggregate_thresholds"]["thresholdLevels"][0]["thresholdValue"] == 42
    assert kpis["k-cpu"]["adaptive_thresholds_is_enabled"] is False


def test_use_latest_data_analyzes_from_shared_anchor(config, store, mock_search_client):
    mock_search_client.execute.return_value = [stdev_row("k-err", "svc1")]
    workflow = _workflow(config, store, mock_search_client, services=["svc1"], kpis=["k-err"], use_latest_data=True)

    workflow.execute()

    job = mock_search_client.execute.call_args.args[0]
    assert job.earliest_time == "1000"
    assert job.latest_time == str(1000 + 7 * 86400)


def test_insufficient_data_is_skipped_by_default(config, store, mock_search_client, caplog):
    mock_search_client.execute.return_value = [
        stdev_row("k-err", "svc1"),
        {"itsi_kpi_id": "None", "itsi_service_id": "None", "Recommendation Flag": "INSUFFICIENT_DATA"},
    ]
    workflow = _workflow(config, store, mock_search_client, services=["svc1"])

    with caplog.at_level(logging.INFO):
        workflow.execute()

    kpis = _kpis(store, "svc1")
    assert kpis["k-net"]["aggregate_thresholds"]["thresholdLevels"][0]["thresholdValue"] == 42
    assert "Thresholds have been configured successfully for 1 KPIs." in caplog.text
    assert "2 KPIs have not been configured" in caplog.text
    (summary,) = [r for r in caplog.records if "has been saved" in r.getMessage()]
    assert summary.levelno == logging.WARNING
    assert summary.tuner["kpis_skipped"] == 2


def test_insufficient_data_reset(config, store, mock_search_client):
    mock_search_client.execute.return_value = [stdev_row("k-err", "svc1")]
    workflow = _workflow(config, store, mock_search_client, services=["svc1"], insufficient_data_action="reset")

    workflow.execute()

    kpis = _kpis(store, "svc1")
    assert kpis["k-net"]["aggregate_thresholds"]["thresholdLevels"] == []
    assert kpis["k-cpu"]["aggregate_thresholds"]["thresholdLevels"] == []


def test_failed_search_never_resets_kpis(config, store, mock_search_client):
    mock_search_client.execute.side_effect = SearchError("Splunk search returned no results")
    workflow = _workflow(config, store, mock_search_client, services=["svc1"], insufficient_data_action="reset")

    with pytest.raises(ExecutionError, match="no results"):
        workflow.execute()

    assert store.updates == []


def test_dry_run_does_not_save(config, store, mock_search_client):
    mock_search_client.execute.return_value = [stdev_row("k-err", "svc1")]
    workflow = _workflow(config, store, mock_search_client, services=["svc1"], dry_run=True)

    workflow.execute()

    assert store.updates == []


def test_services_without_ml_kpis_are_not_analyzed(config, mock_search_client):
    store = InMemoryObjectStore([make_service("svc9", "Static", [make_kpi("k1", "Errors", ml=False)])])
    workflow = _workflow(config, store, mock_search_client)

    workflow.execute()

    mock_search_client.execute.assert_not_called()
    assert store.updates == []


def test_malformed_thresholds_stop_the_run(mock_search_client):
    # with a concurrency of 1 every group is a single batch of five services
    documents = [make_service(f"svc{i}", f"Service {i}", [make_kpi(f"k{i}", "Errors")]) for i in range(12)]
    store = InMemoryObjectStore(documents)

    def execute(job):
        rows = []
        for i in range(12):
            if f'"svc{i}"' in job.query:
                rows.append(stdev_row(f"k{i}", f"svc{i}", thresholds="{'critical': oops}"))
        return rows

    mock_search_client.execute.side_effect = execute
    workflow = _workflow(TunerConfig(concurrency=1, access_token="token"), store, mock_search_client)

    with pytest.raises(ExecutionError) as exc_info:
        workflow.execute()

    assert exc_info.value.fatal
    assert all(isinstance(e, ConfigParseError) for e in exc_info.value.errors)
    assert mock_search_client.execute.call_count == 1
    assert store.updates == []


def test_invalid_insufficient_data_action(config, store, mock_search_client):
    with pytest.raises(ValueError, match="invalid insufficient data action"):
        _workflow(config, store, mock_search_client, insufficient_data_action="ignore")


def _rows_for_query(n):
    def execute(job):
        return [stdev_row(f"k{i}", f"svc{i}") for i in range(n) if f'"svc{i}"' in job.query]

    return execute


def test_persist_failure_only_affects_that_service(mock_search_client):
    documents = [make_service(f"svc{i}", f"Service {i}", [make_kpi(f"k{i}", "Errors")]) for i in range(3)]
    store = InMemoryObjectStore(documents)
    store.fail_updates_for.add("svc1")
    mock_search_client.execute.side_effect = _rows_for_query(3)
    workflow = _workflow(TunerConfig(concurrency=2, access_token="token"), store, mock_search_client)

    with pytest.raises(ExecutionError) as exc_info:
        workflow.execute()

    assert [str(e) for e in exc_info.value.errors] == ["failed to save service svc1"]
    assert sorted(svc.key for svc in store.updates) == ["svc0", "svc2"]
    assert _kpis(store, "svc2")["k2"]["adaptive_thresholds_is_enabled"] is True


def test_malformed_window_is_reported_with_earlier_failures(mock_search_client):
    documents = [make_service(f"svc{i}", f"Service {i}", [make_kpi(f"k{i}", "Errors")]) for i in range(6)]
    documents.append(make_service("svc6", "Service 6", [make_kpi("k6", "Errors", window="7d")]))
    store = InMemoryObjectStore(documents)
    store.fail_updates_for.add("svc0")
    mock_search_client.execute.side_effect = _rows_for_query(7)
    workflow = _workflow(TunerConfig(concurrency=1, access_token="token"), store, mock_search_client)

    with pytest.raises(ExecutionError) as exc_info:
        workflow.execute()

    errors = exc_info.value.errors
    assert [type(e) for e in errors] == [PersistError, ConfigParseError]
    assert str(errors[0]) == "failed to save service svc0"
    assert "'7d' is not a valid training window" in str(errors[1])
    # the first group (svc0 to svc4) was analyzed and saved before the stream failed
    assert sorted(svc.key for svc in store.updates) == ["svc1", "svc2", "svc3", "svc4"]
