from concurrent.futures import ThreadPoolExecutor

from catalog_ingest.monitoring.history import HealthHistory

from .conftest import make_snapshot


def test_record_returns_prior_history(tmp_path):
    history = HealthHistory(tmp_path)

    assert history.record(make_snapshot(courses_found=100)) == []
    prior = history.record(make_snapshot(courses_found=110))

    assert [s.metrics.courses_found for s in prior] == [100]
    assert history.latest("catalog_2024_01").metrics.courses_found == 110


def test_read_with_limit(tmp_path):
    history = HealthHistory(tmp_path)
    for count in (1, 2, 3, 4):
        history.append(make_snapshot(courses_found=count))

    assert [s.metrics.courses_found for s in history.read("catalog_2024_01", limit=2)] == [3, 4]
    assert len(history.read("catalog_2024_01")) == 4


def test_sources_are_kept_apart(tmp_path):
    history = HealthHistory(tmp_path)
    history.append(make_snapshot("catalog_2023_01"))
    history.append(make_snapshot("catalog_2024_01"))

    assert history.source_ids() == ["catalog_2023_01", "catalog_2024_01"]
    assert len(history.read("catalog_2023_01")) == 1
    assert history.latest("missing") is None


def test_unreadable_lines_are_skipped(tmp_path):
    history = HealthHistory(tmp_path)
    history.append(make_snapshot())
    with open(history.path_for("catalog_2024_01"), "a", encoding="utf-8") as f:
        f.write('{"sourceId": "catalog_2024_01"}\n')

    assert len(history.read("catalog_2024_01")) == 1


def test_concurrent_records_lose_nothing(tmp_path):
    history = HealthHistory(tmp_path)
    snapshots = [make_snapshot(f"catalog_{i % 3}", courses_found=i) for i in range(30)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        priors = list(pool.map(history.record, snapshots))

    for source in ("catalog_0", "catalog_1", "catalog_2"):
        assert len(history.read(source)) == 10
    # every record saw a distinct prior length for its source
    lengths = {}
    for snapshot, prior in zip(snapshots, priors):
        lengths.setdefault(snapshot.source_id, []).append(len(prior))
    assert all(sorted(v) == list(range(10)) for v in lengths.values())


def test_similar_source_ids_get_separate_files(tmp_path):
    history = HealthHistory(tmp_path)
    history.record(make_snapshot("catalog 2023", courses_found=100))
    history.record(make_snapshot("catalog_2023", courses_found=300))
    history.record(make_snapshot("catalog/2023", courses_found=500))

    assert [s.metrics.courses_found for s in history.read("catalog 2023")] == [100]
    assert [s.metrics.courses_found for s in history.read("catalog_2023")] == [300]
    assert [s.metrics.courses_found for s in history.read("catalog/2023")] == [500]
    assert history.source_ids() == ["catalog 2023", "catalog/2023", "catalog_2023"]
