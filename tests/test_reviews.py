import pytest

from storefront.errors import Conflict, Forbidden, InvalidInput, NotFound
from storefront.models import Review
from storefront.reviews import ReviewWorkflow


@pytest.fixture
def reviews(db):
    return ReviewWorkflow(db)


def test_create_review(reviews, user):
    review = reviews.create_review(user, "P1", 5, "Great", "Loved it", ["img/1.png", "img/2.png"])

    assert review.id is not None
    assert review.account_id == user.id
    assert review.rating == 5
    assert review.is_verified is True
    assert review.helpful_count == 0
    assert review.images == ["img/1.png", "img/2.png"]


def test_duplicate_review_conflicts(reviews, db, user):
    assert reviews.can_review(user, "P1") is True
    reviews.create_review(user, "P1", 4, "Good", None)

    with pytest.raises(Conflict):
        reviews.create_review(user, "P1", 2, "Changed my mind", None)
    assert reviews.can_review(user, "P1") is False
    assert reviews.can_review(user, "P2") is True
    assert db.query(Review).count() == 1


def test_unique_index_backs_the_duplicate_check(reviews, db, user, mocker):
    reviews.create_review(user, "P1", 4)
    # simulate the concurrent case where the pre-check saw no review
    mocker.patch.object(ReviewWorkflow, "can_review", return_value=True)

    with pytest.raises(Conflict):
        reviews.create_review(user, "P1", 3)
    assert db.query(Review).count() == 1


@pytest.mark.parametrize("rating", [0, 6, -1, True])
def test_rating_out_of_range(reviews, user, rating):
    with pytest.raises(InvalidInput):
        reviews.create_review(user, "P1", rating)


def test_update_review_owner_only(reviews, user, other_user, admin):
    review = reviews.create_review(user, "P1", 3, "Ok", "Meh", ["a.png"])

    updated = reviews.update_review(review.id, user, 4, "Better", "Grew on me", [])
    assert updated.rating == 4
    assert updated.title == "Better"
    assert updated.images == []

    with pytest.raises(Forbidden):
        reviews.update_review(review.id, other_user, 1, "Bad", None)
    with pytest.raises(Forbidden):
        reviews.update_review(review.id, admin, 1, "Bad", None)
    with pytest.raises(NotFound):
        reviews.update_review(9999, user, 1)


def test_update_review_validates_rating(reviews, user):
    review = reviews.create_review(user, "P1", 3)
    with pytest.raises(InvalidInput):
        reviews.update_review(review.id, user, 9)


def test_delete_review(reviews, db, user, other_user, admin):
    mine = reviews.create_review(user, "P1", 3).id
    theirs = reviews.create_review(other_user, "P1", 2).id

    with pytest.raises(Forbidden):
        reviews.delete_review(mine, other_user)

    reviews.delete_review(mine, user)
    reviews.delete_review(theirs, admin)
    assert db.query(Review).count() == 0
    assert reviews.can_review(user, "P1") is True

    with pytest.raises(NotFound):
        reviews.delete_review(mine, user)


def test_mark_helpful_counts_every_call(reviews, user):
    review = reviews.create_review(user, "P1", 5)

    assert reviews.mark_helpful(review.id) == 1
    assert reviews.mark_helpful(review.id) == 2
    assert reviews.get_review(review.id).helpful_count == 2


def test_mark_helpful_missing_review(reviews):
    with pytest.raises(NotFound):
        reviews.mark_helpful(404)


def test_rating_summary_empty(reviews):
    summary = reviews.get_rating_summary("NOPE")

    assert summary.average == 0.0
    assert summary.total == 0
    assert summary.distribution == {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}


def test_rating_summary(reviews, db, user, other_user, admin):
    reviews.create_review(user, "P1", 5)
    reviews.create_review(other_user, "P1", 4)
    reviews.create_review(admin, "P1", 4)
    reviews.create_review(user, "P2", 1)

    summary = reviews.get_rating_summary("P1")

    assert summary.total == 3
    assert summary.average == 4.33
    assert summary.distribution == {1: 0, 2: 0, 3: 0, 4: 2, 5: 1}


def test_listing_and_search(reviews, user, other_user):
    first = reviews.create_review(user, "P1", 5, "Excellent sound", "Crisp highs")
    second = reviews.create_review(other_user, "P1", 2, "Broke quickly", "The strap SNAPPED")
    reviews.create_review(user, "P2", 3, "Fine", None)

    assert [r.id for r in reviews.reviews_for_product("P1")] == [second.id, first.id]
    assert [r.id for r in reviews.reviews_for_product("P1", rating=5)] == [first.id]
    assert [r.id for r in reviews.reviews_by_account(user)][-1] == first.id
    assert [r.id for r in reviews.search_reviews("P1", "snapped")] == [second.id]
    assert [r.id for r in reviews.search_reviews("P1", "CRISP")] == [first.id]
    assert reviews.search_reviews("P2", "crisp") == []

    with pytest.raises(InvalidInput):
        reviews.reviews_for_product("P1", rating=7)


def test_most_helpful_reviews(reviews, user, other_user, admin):
    quiet = reviews.create_review(user, "P1", 5)
    popular = reviews.create_review(other_user, "P1", 2)
    newest = reviews.create_review(admin, "P1", 4)
    reviews.mark_helpful(popular.id)
    reviews.mark_helpful(popular.id)

    ranked = [r.id for r in reviews.most_helpful_reviews("P1")]
    assert ranked == [popular.id, newest.id, quiet.id]
    assert reviews.most_helpful_reviews("P2") == []


def test_verified_reviews(reviews, db, user, other_user):
    verified = reviews.create_review(user, "P1", 5)
    unverified = reviews.create_review(other_user, "P1", 3)
    unverified.is_verified = False
    db.commit()

    assert [r.id for r in reviews.verified_reviews("P1")] == [verified.id]


def test_review_for_account(reviews, user, other_user):
    review = reviews.create_review(user, "P1", 4)

    assert reviews.review_for_account(user, "P1").id == review.id
    assert reviews.review_for_account(other_user, "P1") is None
    assert reviews.review_for_account(user, "P2") is None
