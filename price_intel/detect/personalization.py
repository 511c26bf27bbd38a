"""Split ranked deals by a viewer's calibers.

Personalization only filters. It keeps the ranked order inside each
bucket and passes the hero through untouched.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from price_intel.calibers import Caliber, normalize_caliber
from price_intel.detect.eligibility import MarketDeal
from price_intel.detect.ranking import RankedDeals


@dataclass(frozen=True)
class PersonalizedDeals:
    """Ranked deals bucketed for one viewer."""

    hero: Optional[MarketDeal]
    personalized_deals: list[MarketDeal] = field(default_factory=list)
    other_deals: list[MarketDeal] = field(default_factory=list)


def viewer_caliber_set(calibers: Iterable[Union[Caliber, str]]) -> set[Caliber]:
    """Canonical calibers from a viewer's list. Unmapped entries are ignored."""
    result = set()
    for value in calibers:
        caliber = value if isinstance(value, Caliber) else normalize_caliber(value)
        if caliber is not None:
            result.add(caliber)
    return result


def split_for_viewer(
    ranked: RankedDeals,
    viewer_calibers: Iterable[Union[Caliber, str]],
    personalized_cap: int = 5,
    other_cap: int = 5,
) -> PersonalizedDeals:
    """
    Partition ranked deals into viewer matches and the rest.

    Args:
        ranked: Output of rank_deals
        viewer_calibers: Viewer's calibers, may be empty
        personalized_cap: Display cap for matching deals
        other_cap: Display cap for the remaining deals

    Returns:
        PersonalizedDeals carrying the unchanged hero
    """
    wanted = viewer_caliber_set(viewer_calibers)

    matching = [d for d in ranked.deals if d.caliber in wanted]
    others = [d for d in ranked.deals if d.caliber not in wanted]

    return PersonalizedDeals(
        hero=ranked.hero,
        personalized_deals=matching[:personalized_cap],
        other_deals=others[:other_cap],
    )
