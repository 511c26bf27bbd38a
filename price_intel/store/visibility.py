"""Consumer visibility predicate for price observations.

An observation counts only when:
- its retailer is ELIGIBLE,
- the retailer has no ACTIVE merchant relationship, or that relationship is LISTED,
- it did not come from an ingestion run that was later ignored.

Every store query goes through `VisibilityPolicy.apply`; statistics are
never computed over invisible observations.
"""

from sqlalchemy import Select, and_, or_

from price_intel.db.models import (
    AffiliateFeedRun,
    ListingStatus,
    MerchantRetailer,
    MerchantStatus,
    Price,
    Retailer,
    VisibilityStatus,
)


class VisibilityPolicy:
    """Adds the visibility joins and filters to a query selecting from Price."""

    def apply(self, stmt: Select) -> Select:
        """
        Restrict a statement to consumer-visible observations.

        The statement must already select from Price. Retailer is joined
        here, so callers may reference Retailer columns in their select list.

        Args:
            stmt: Statement selecting from Price

        Returns:
            Statement with visibility joins and conditions applied
        """
        return (
            stmt.join(Retailer, Retailer.id == Price.retailer_id)
            .outerjoin(
                MerchantRetailer,
                and_(
                    MerchantRetailer.retailer_id == Retailer.id,
                    MerchantRetailer.status == MerchantStatus.ACTIVE.value,
                ),
            )
            .outerjoin(AffiliateFeedRun, AffiliateFeedRun.id == Price.affiliate_feed_run_id)
            .where(
                Retailer.visibility_status == VisibilityStatus.ELIGIBLE.value,
                or_(
                    MerchantRetailer.id.is_(None),
                    MerchantRetailer.listing_status == ListingStatus.LISTED.value,
                ),
                or_(
                    Price.affiliate_feed_run_id.is_(None),
                    AffiliateFeedRun.ignored_at.is_(None),
                ),
            )
        )


# Default policy instance
visibility_policy = VisibilityPolicy()
