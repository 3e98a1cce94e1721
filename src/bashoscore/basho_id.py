"""Basho ids and the tournament calendar."""

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from bashoscore.util import MalformedBashoId

BASHO_MONTHS = (1, 3, 5, 7, 9, 11)

SEASONS = {
    1: "Hatsu",
    3: "Haru",
    5: "Natsu",
    7: "Nagoya",
    9: "Aki",
    11: "Kyushu",
}

VENUES = {
    1: "Tokyo",
    3: "Osaka",
    5: "Tokyo",
    7: "Nagoya",
    9: "Tokyo",
    11: "Fukuoka",
}

JST = timezone(timedelta(hours=9), "JST")
START_TIME_JST = time(15, 0)


@dataclass(frozen=True, order=True)
class BashoId:
    year: int
    month: int

    def __post_init__(self) -> None:
        if self.month not in BASHO_MONTHS:
            raise MalformedBashoId(
                f"Basho month must be one of {BASHO_MONTHS}, got {self.month}"
            )

    @classmethod
    def parse(cls, s: str) -> "BashoId":
        """Parse a ``YYYYMM`` string."""
        s = s.strip()
        if len(s) != 6 or not s.isdigit():
            raise MalformedBashoId(f"Basho id must be YYYYMM, got {s!r}")
        return cls(int(s[:4]), int(s[4:]))

    @classmethod
    def from_int(cls, value: int) -> "BashoId":
        return cls(value // 100, value % 100)

    def to_int(self) -> int:
        return self.year * 100 + self.month

    @property
    def id(self) -> str:
        return f"{self.year:04d}{self.month:02d}"

    def url_path(self) -> str:
        return f"/basho/{self.id}"

    def season(self) -> str:
        return SEASONS[self.month]

    def month_name(self) -> str:
        return calendar.month_name[self.month]

    def expected_venue(self) -> str:
        return VENUES[self.month]

    def expected_start(self) -> datetime:
        """Second Sunday of the month at 15:00 JST, as UTC.

        Only an estimate for display; pick locking uses the recorded start.
        """
        first = datetime(self.year, self.month, 1)
        # weekday(): Monday=0 .. Sunday=6
        first_sunday = 1 + (6 - first.weekday()) % 7
        local = datetime.combine(
            first.replace(day=first_sunday + 7).date(), START_TIME_JST, tzinfo=JST,
        )
        return local.astimezone(timezone.utc)

    def incr(self, count: int) -> "BashoId":
        """Step ``count`` tournaments forward (or back when negative)."""
        months = self.year * 12 + (self.month - 1) + 2 * count
        year, month0 = divmod(months, 12)
        return BashoId(year, month0 + 1)

    def next(self) -> "BashoId":
        return self.incr(1)

    def previous(self) -> "BashoId":
        return self.incr(-1)

    def window_of_size(self, n: int) -> "BashoRange":
        """The ``n`` bashos strictly before this one."""
        return BashoRange(self.incr(-n), self)

    def range_for_banzuke(self) -> "BashoRange":
        """Window used to rank players on the banzuke for this basho."""
        return self.window_of_size(6)

    def __str__(self) -> str:
        return f"{self.season()} - {self.month_name()} {self.year:04d}"


@dataclass(frozen=True)
class BashoRange:
    """Half-open range ``[start, end)`` of basho ids."""

    start: BashoId
    end: BashoId

    def __iter__(self) -> Iterator[BashoId]:
        basho_id = self.start
        while basho_id < self.end:
            yield basho_id
            basho_id = basho_id.next()

    def __len__(self) -> int:
        if self.end <= self.start:
            return 0
        return (self.end.year - self.start.year) * 6 + (
            self.end.month - self.start.month
        ) // 2

    def __contains__(self, basho_id: object) -> bool:
        return isinstance(basho_id, BashoId) and self.start <= basho_id < self.end
