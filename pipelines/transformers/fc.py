"""
FC Classifier and Best-Score Selector

Decides whether a leaderboard score is a full combo and picks the one
score that represents a beatmap in the Data table.
"""

from typing import Optional, Sequence

from pipelines.transformers.mods import AUTO_MAX_COMBO_MODS, is_mod_allowed, mod_string
from schemas.osu import Score
from schemas.records import BestScoreSummary, Link

# Only perfect-accuracy-tier grades can be FCs
FC_RANKS = frozenset({"S", "SH", "X", "XH"})

RANK_VALUES: dict[str, int] = {
    "D": 1,
    "C": 2,
    "B": 3,
    "A": 4,
    "S": 5,
    "SH": 5,
    "X": 6,
    "XH": 6,
}

DEFAULT_SCORE_WINDOW = 50


def rank_value(rank: Optional[str]) -> int:
    """Ordinal for a letter grade; unknown or empty grades are 0."""
    return RANK_VALUES.get(rank or "", 0)


def is_full_combo(score: Optional[Score], max_combo: int) -> bool:
    """
    Decide whether `score` is a full combo on a map with `max_combo`.

    Checks, in order, each short-circuiting to False:
      1. a score is present
      2. its grade is S, SH, X or XH (always required, before anything else)
      3. it carries no forbidden mod
      4. it was set with SD or PF, or its combo is at least max_combo - 1

    max_combo - 1 is accepted because a one-short combo only misses an FC
    if the very first object broke, which practically never happens. Such
    rows can be false positives and are left for manual review.
    """
    if score is None:
        return False
    if score.rank not in FC_RANKS:
        return False
    if not is_mod_allowed(score.mods):
        return False
    if score.mods & AUTO_MAX_COMBO_MODS:
        return True
    return score.combo >= max_combo - 1


def percent_fc(combo: int, max_combo: int) -> float:
    if max_combo <= 0:
        return 0.0
    return combo / max_combo * 100


def select_best_score(
    scores: Sequence[Score],
    max_combo: int,
    window: int = DEFAULT_SCORE_WINDOW,
    web_base_url: str = "https://osu.ppy.sh",
) -> BestScoreSummary:
    """
    Pick the representative score from the top `window` leaderboard entries.

    Entries with forbidden mods are ignored. The first FC found wins and
    stops the scan, so leaderboard order breaks ties between FCs. Otherwise
    the highest combo wins, and on equal combo the better grade.

    An empty or fully illegal leaderboard yields an empty summary with
    combo 0 and percent_fc 0.
    """
    best: Optional[Score] = None
    best_combo = 0
    best_rank = ""

    for score in scores[:window]:
        if not is_mod_allowed(score.mods):
            continue

        if is_full_combo(score, max_combo):
            best = score
            break

        if score.combo > best_combo or (
            score.combo == best_combo and rank_value(score.rank) > rank_value(best_rank)
        ):
            best = score
            best_combo = score.combo
            best_rank = score.rank

    if best is None:
        return BestScoreSummary(percent_fc=percent_fc(0, max_combo))

    player = None
    if best.user_id:
        player = Link(
            label=best.username,
            url=f"{web_base_url}/users/{best.user_id}/osu",
        )

    return BestScoreSummary(
        user_id=best.user_id,
        username=best.username,
        player=player,
        mods=mod_string(best.mods),
        combo=best.combo,
        rank=best.rank,
        score_date=best.played_at.date() if best.played_at else None,
        percent_fc=percent_fc(best.combo, max_combo),
    )
