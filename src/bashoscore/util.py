"""Common utilities and exception classes."""


class BashoScoreError(Exception):
    """Base exception for bashoscore."""


class MalformedRank(BashoScoreError, ValueError):
    """Rank code that cannot be parsed."""


class MalformedBashoId(BashoScoreError, ValueError):
    """Basho id that is not a valid YYYYMM tournament month."""


class InvalidPicks(BashoScoreError):
    """Pick submission rejected; nothing was written."""


class TournamentAlreadyStarted(InvalidPicks):
    """Picks cannot change once the basho has started."""


class DuplicateRankGroup(InvalidPicks):
    """Two or more picks resolve to the same rank group."""


class RikishiNotOnBanzuke(InvalidPicks):
    """A pick refers to a rikishi missing from the basho's banzuke."""


class UnknownBasho(BashoScoreError):
    """No basho row exists for the requested id."""


class AmbiguousShikona(BashoScoreError):
    """More than one rikishi matches a shikona."""


class DataIntegrityMismatch(BashoScoreError):
    """Per-day win sum disagrees with the stored total."""


class FetchError(BashoScoreError):
    """HTTP fetch failure after retries."""
