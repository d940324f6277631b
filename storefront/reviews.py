import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import Conflict, InvalidInput, NotFound
from storefront.models import Account, Review, utcnow
from storefront.permissions import authorize

logger = logging.getLogger(__name__)

RATINGS = range(1, 6)


@dataclass
class RatingSummary:
    average: float = 0.0
    total: int = 0
    distribution: Dict[int, int] = field(default_factory=lambda: {r: 0 for r in RATINGS})


def _check_rating(rating):
    if not isinstance(rating, int) or isinstance(rating, bool) or rating not in RATINGS:
        raise InvalidInput("Rating must be an integer between 1 and 5")


def _clean_images(images) -> List[str]:
    return [str(i) for i in (images or [])]


class ReviewWorkflow:
    def __init__(self, db: Session):
        self.db = db

    def create_review(self, account: Account, product_id: str, rating: int,
                      title: Optional[str] = None, comment: Optional[str] = None,
                      images: Optional[List[str]] = None) -> Review:
        _check_rating(rating)
        if not product_id:
            raise InvalidInput("Product id is required")
        if not self.can_review(account, product_id):
            raise Conflict("You have already reviewed this product")

        review = Review(
            account_id=account.id,
            product_id=product_id,
            rating=rating,
            title=title,
            comment=comment,
            images=_clean_images(images),
            # TODO: derive from the account's completed orders once order history is stored
            is_verified=True,
            helpful_count=0,
        )
        self.db.add(review)
        try:
            self.db.commit()
        except IntegrityError:
            # lost the race against a concurrent submission
            self.db.rollback()
            raise Conflict("You have already reviewed this product")
        self.db.refresh(review)

        logger.info("Review %s created for product %s by account %s", review.id, product_id, account.id)
        return review

    def update_review(self, review_id: int, account: Account, rating: int,
                      title: Optional[str] = None, comment: Optional[str] = None,
                      images: Optional[List[str]] = None) -> Review:
        review = self.get_review(review_id)
        authorize(account, review, "update")
        _check_rating(rating)

        review.rating = rating
        review.title = title
        review.comment = comment
        review.images = _clean_images(images)
        review.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(review)
        return review

    def delete_review(self, review_id: int, account: Account):
        review = self.get_review(review_id)
        authorize(account, review, "delete")
        self.db.delete(review)
        self.db.commit()
        logger.info("Review %s deleted by account %s", review_id, account.id)

    def mark_helpful(self, review_id: int) -> int:
        """Add one helpful vote. Votes are not deduplicated per caller."""
        result = self.db.execute(
            update(Review)
            .where(Review.id == review_id)
            .values(helpful_count=Review.helpful_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise NotFound("Review not found")
        self.db.commit()
        return self.db.query(Review.helpful_count).filter(Review.id == review_id).scalar()

    def get_rating_summary(self, product_id: str) -> RatingSummary:
        rows = (
            self.db.query(Review.rating, func.count(Review.id))
            .filter(Review.product_id == product_id)
            .group_by(Review.rating)
            .all()
        )
        summary = RatingSummary()
        weighted = 0
        for rating, count in rows:
            summary.distribution[rating] = count
            summary.total += count
            weighted += rating * count
        if summary.total:
            summary.average = round(weighted / summary.total, 2)
        return summary

    def can_review(self, account: Account, product_id: str) -> bool:
        exists = (
            self.db.query(Review.id)
            .filter(Review.account_id == account.id, Review.product_id == product_id)
            .first()
        )
        return exists is None

    def get_review(self, review_id: int) -> Review:
        review = self.db.get(Review, review_id)
        if review is None:
            raise NotFound("Review not found")
        return review

    def reviews_for_product(self, product_id: str, rating: Optional[int] = None):
        query = self.db.query(Review).filter(Review.product_id == product_id)
        if rating is not None:
            _check_rating(rating)
            query = query.filter(Review.rating == rating)
        return query.order_by(Review.created_at.desc(), Review.id.desc()).all()

    def most_helpful_reviews(self, product_id: str):
        return (
            self.db.query(Review)
            .filter(Review.product_id == product_id)
            .order_by(Review.helpful_count.desc(), Review.created_at.desc(), Review.id.desc())
            .all()
        )

    def verified_reviews(self, product_id: str):
        return (
            self.db.query(Review)
            .filter(Review.product_id == product_id, Review.is_verified.is_(True))
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )

    def review_for_account(self, account: Account, product_id: str) -> Optional[Review]:
        return self.db.query(Review).filter_by(account_id=account.id, product_id=product_id).first()

    def reviews_by_account(self, account: Account):
        return (
            self.db.query(Review)
            .filter(Review.account_id == account.id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )

    def search_reviews(self, product_id: str, term: str):
        pattern = f"%{(term or '').lower()}%"
        return (
            self.db.query(Review)
            .filter(
                Review.product_id == product_id,
                or_(func.lower(Review.title).like(pattern), func.lower(Review.comment).like(pattern)),
            )
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )
