import pytest

from doclink.jobs.backoff import exponential_delay


class TestExponentialDelay:
    def test_first_retry_uses_base(self) -> None:
        assert exponential_delay(5.0, 0) == 5.0

    def test_doubles_by_default(self) -> None:
        assert [exponential_delay(5.0, n) for n in range(4)] == [5.0, 10.0, 20.0, 40.0]

    def test_custom_factor(self) -> None:
        assert exponential_delay(2.0, 2, factor=3.0) == 18.0

    def test_is_capped(self) -> None:
        assert exponential_delay(5.0, 10, cap_seconds=30.0) == 30.0

    def test_negative_attempt_raises(self) -> None:
        with pytest.raises(ValueError):
            exponential_delay(5.0, -1)
