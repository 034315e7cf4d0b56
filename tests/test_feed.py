import pytest

from schemes.marketplace import Listing, Promotion, ShopRef
from utils.enums import PromotionTier
from utils.errors import FeedContractError
from utils.feed import compose, compose_page

SHOP = ShopRef(id="shop_1", slug="acme", name="Acme", province="Gauteng")


def organic(*ids: str) -> list[Listing]:
    return [Listing(id=i, name=f"Product {i}", shop=SHOP) for i in ids]


def promoted(item_id: str, tier: PromotionTier = PromotionTier.BOOST, pl_id: str | None = None) -> Listing:
    return Listing(
        id=item_id,
        name=f"Product {item_id}",
        shop=SHOP,
        promotion=Promotion(tier=tier, promoted_listing_id=pl_id or f"pl_{item_id}"),
    )


def ids(items) -> list[str]:
    return [i.id for i in items]


def test_promoted_every_fifth_slot_then_remainder():
    result = compose(
        organic("o1", "o2", "o3", "o4", "o5", "o6"),
        [promoted("p1", PromotionTier.FEATURED, "pl_1"), promoted("p2", PromotionTier.BOOST, "pl_2")],
    )
    assert ids(result) == ["o1", "o2", "o3", "o4", "p1", "o5", "o6", "p2"]


def test_slots_repeat_at_cadence():
    result = compose(organic(*[f"o{i}" for i in range(1, 11)]), [promoted("p1"), promoted("p2"), promoted("p3")])
    assert ids(result) == [
        "o1", "o2", "o3", "o4", "p1",
        "o5", "o6", "o7", "o8", "p2",
        "o9", "o10", "p3",
    ]


def test_listing_in_both_streams_appears_once_as_promoted():
    result = compose(organic("o1", "dup", "o2"), [promoted("dup", PromotionTier.SPOTLIGHT, "pl_dup")])
    assert ids(result).count("dup") == 1
    dup = next(i for i in result if i.id == "dup")
    assert dup.promotion.promoted_listing_id == "pl_dup"


def test_empty_sides_are_identity():
    o = organic("o1", "o2", "o3")
    p = [promoted("p1"), promoted("p2")]
    assert compose(o, []) == o
    assert compose([], p) == p
    assert compose([], []) == []


def test_short_organic_appends_all_promoted():
    result = compose(organic("o1", "o2"), [promoted("p1"), promoted("p2")])
    assert ids(result) == ["o1", "o2", "p1", "p2"]


def test_compose_is_deterministic():
    o = organic("o1", "o2", "o3", "o4", "o5")
    p = [promoted("p1"), promoted("o3", PromotionTier.FEATURED)]
    assert compose(o, p) == compose(o, p)


def test_output_ids_are_unique_and_complete():
    o = organic("a", "b", "c", "d", "e", "f", "g")
    p = [promoted("c"), promoted("x"), promoted("g")]
    result = ids(compose(o, p))
    assert len(result) == len(set(result))
    assert set(result) == {"a", "b", "c", "d", "e", "f", "g", "x"}


def test_duplicate_promoted_keeps_highest_tier():
    p = [
        promoted("p1", PromotionTier.BOOST, "pl_boost"),
        promoted("p1", PromotionTier.SPOTLIGHT, "pl_spot"),
        promoted("p1", PromotionTier.FEATURED, "pl_feat"),
    ]
    result = compose(organic("o1"), p)
    assert ids(result) == ["o1", "p1"]
    assert result[1].promotion.promoted_listing_id == "pl_spot"


def test_duplicate_promoted_equal_tier_keeps_first():
    p = [promoted("p1", pl_id="pl_first"), promoted("p1", pl_id="pl_second")]
    result = compose([], p)
    assert [i.promotion.promoted_listing_id for i in result] == ["pl_first"]


def test_custom_cadence():
    result = compose(organic("o1", "o2", "o3"), [promoted("p1"), promoted("p2")], cadence=1)
    assert ids(result) == ["o1", "p1", "o2", "p2", "o3"]


def test_bad_cadence_rejected():
    with pytest.raises(ValueError):
        compose(organic("o1"), [promoted("p1")], cadence=0)


def test_promoted_without_promotion_is_contract_error():
    with pytest.raises(FeedContractError) as e:
        compose(organic("o1"), organic("p1"))
    assert e.value.side == "promoted"
    assert e.value.index == 0


def test_blank_id_is_contract_error():
    with pytest.raises(FeedContractError) as e:
        compose(organic("o1", "  "), [])
    assert e.value.side == "organic"
    assert e.value.index == 1


def test_page_keeps_organic_when_promoted_is_malformed():
    o = organic("o1", "o2")
    page = compose_page(o, [promoted("p1", pl_id=" ")], next_cursor="c1")
    assert page.degraded
    assert ids(page.items) == ["o1", "o2"]
    assert page.next_cursor == "c1"


def test_page_drops_only_the_malformed_organic_listing():
    page = compose_page(organic("o1", "o2", " ", "o3", "o4"), [promoted("p1")])
    assert page.degraded
    assert ids(page.items) == ["o1", "o2", "o3", "o4", "p1"]


def test_page_drops_only_the_malformed_promoted_listing():
    p = [promoted("p1"), organic("p2")[0], promoted("p3")]
    page = compose_page(organic("o1", "o2", "o3", "o4", "o5"), p)
    assert page.degraded
    assert ids(page.items) == ["o1", "o2", "o3", "o4", "p1", "o5", "p3"]


def test_page_empty_when_every_candidate_is_malformed():
    page = compose_page(organic(""), organic("p1"))
    assert page.degraded
    assert page.items == []


def test_healthy_page_is_not_degraded():
    page = compose_page(organic("o1"), [promoted("p1")])
    assert not page.degraded
    assert ids(page.items) == ["o1", "p1"]
