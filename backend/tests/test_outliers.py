from backend.app.services.outliers import detect_outliers, median_view_count, rank_outliers
from backend.tests.helpers import make_outlier, make_video


def videos_with_views(views):
    return [make_video(f"v{i}", count) for i, count in enumerate(views)]


def test_median_view_count():
    assert median_view_count(videos_with_views([5, 1, 3])) == 3
    assert median_view_count(videos_with_views([4, 1, 3, 2])) == 2.5
    assert median_view_count([]) == 0


def test_single_outlier_scenario():
    outliers = detect_outliers(videos_with_views([10, 10, 10, 10, 100]), "UC_A", "Channel A", threshold=3)
    assert len(outliers) == 1
    assert outliers[0].view_count == 100
    assert outliers[0].multiplier == 10.0
    assert outliers[0].channel_id == "UC_A"
    assert outliers[0].channel_title == "Channel A"


def test_small_samples_produce_nothing():
    assert detect_outliers([], "UC_A", "A") == []
    assert detect_outliers(videos_with_views([1, 1000]), "UC_A", "A") == []


def test_zero_median_produces_nothing():
    assert detect_outliers(videos_with_views([0, 0, 0, 500]), "UC_A", "A") == []


def test_flat_catalog_has_no_outliers():
    assert detect_outliers(videos_with_views([250] * 8), "UC_A", "A") == []


def test_threshold_is_inclusive_and_sorted():
    outliers = detect_outliers(videos_with_views([100, 100, 100, 300, 450, 1000]), "UC_A", "A")
    # median = (100 + 300) / 2 = 200
    assert [o.view_count for o in outliers] == [1000]
    outliers = detect_outliers(videos_with_views([100, 100, 100, 300, 320, 1000]), "UC_A", "A", threshold=1.5)
    assert [o.multiplier for o in outliers] == [5.0, 1.6, 1.5]


def test_multiplier_rounds_to_one_decimal():
    outliers = detect_outliers(videos_with_views([30, 30, 30, 100]), "UC_A", "A")
    assert outliers[0].multiplier == 3.3


def test_rank_outliers_merges_globally():
    first = [make_outlier("a1", "UC_A", 9.0), make_outlier("a2", "UC_A", 3.1)]
    second = [make_outlier("b1", "UC_B", 12.5), make_outlier("b2", "UC_B", 4.0)]
    ranked = rank_outliers([first, second], limit=3)
    assert [o.video_id for o in ranked] == ["b1", "a1", "b2"]


def test_multiplier_rounds_halves_up():
    # median 4, ratio 3.25
    outliers = detect_outliers(videos_with_views([4, 4, 4, 13]), "UC_A", "A")
    assert outliers[0].multiplier == 3.3
