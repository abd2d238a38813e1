from backend.app.services.peer_range import PEER_BANDS, format_subscribers, select_peer_band


def test_scenario_bands():
    band = select_peer_band(7_500)
    assert (band.min, band.max) == (5_000, 25_000)
    band = select_peer_band(1_000_000)
    assert (band.min, band.max) == (1_000_000, 10_000_000)


def test_breakpoints_pick_next_band():
    assert select_peer_band(0).min == 100
    assert select_peer_band(99).min == 100
    assert select_peer_band(100).min == 500
    assert select_peer_band(499_999).min == 500_000
    assert select_peer_band(500_000).min == 1_000_000
    assert select_peer_band(50_000_000).max == 10_000_000


def test_negative_counts_are_clamped():
    assert select_peer_band(-5) == select_peer_band(0)


def test_breakpoints_partition_counts():
    # Every count maps to exactly one table row: the first breakpoint it falls under.
    breakpoints = [bp for bp, _ in PEER_BANDS if bp is not None]
    assert breakpoints == sorted(breakpoints)
    lower = 0
    for breakpoint, band in PEER_BANDS:
        upper = breakpoint if breakpoint is not None else lower + 1_000
        for count in (lower, upper - 1):
            assert select_peer_band(count) == band
        lower = upper


def test_format_subscribers():
    assert format_subscribers(12_345) == "12.3K"
    assert format_subscribers(2_000_000) == "2M"
    assert format_subscribers(1_500) == "1.5K"
    assert format_subscribers(999) == "999"


def test_format_subscribers_rounds_halves_up():
    assert format_subscribers(1_250) == "1.3K"
    assert format_subscribers(2_250_000) == "2.3M"
