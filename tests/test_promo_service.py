import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from bioharvest.core.exceptions import ErrorCode, PromoError
from bioharvest.models.order_models import Order
from bioharvest.models.promo_models import DiscountType, PromoCode, PromoRedemption
from bioharvest.schemas.promo_schemas import PromoUpdate
from bioharvest.services import promo_service
from bioharvest.services.promo_service import check_promo, compute_discount
from bioharvest.utils.datetime_utils import utcnow
from sqlalchemy import func, select


def _promo(**overrides):
    data = dict(
        code="TEST",
        name="Test",
        discount_type=DiscountType.FIXED,
        discount_value=Decimal("10.00"),
        max_discount=None,
        minimum_order_amount=Decimal("0.00"),
        max_usage=-1,
        max_usage_per_user=1,
        current_usage=0,
        start_date=utcnow() - timedelta(days=1),
        end_date=utcnow() + timedelta(days=1),
        is_active=True,
    )
    data.update(overrides)
    return PromoCode(**data)


class TestDiscountRules:

    def test_fixed_discount(self):
        assert compute_discount(_promo(), Decimal("60")) == Decimal("10.00")

    def test_fixed_discount_never_exceeds_cart(self):
        assert compute_discount(_promo(discount_value=Decimal("25")), Decimal("20")) == Decimal("20.00")

    def test_percentage_is_capped_by_max_discount(self):
        promo = _promo(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("20"), max_discount=Decimal("15"))
        assert compute_discount(promo, Decimal("200")) == Decimal("15.00")
        assert compute_discount(promo, Decimal("50")) == Decimal("10.00")

    def test_percentage_rounds_half_up_to_cents(self):
        promo = _promo(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15"))
        assert compute_discount(promo, Decimal("10.10")) == Decimal("1.52")

    def test_rules_are_checked_in_order(self):
        now = utcnow()
        # inactive wins over everything else
        promo = _promo(is_active=False, end_date=now - timedelta(days=1), minimum_order_amount=Decimal("100"))
        assert check_promo(promo, Decimal("10"), 5, now) == ErrorCode.INACTIVE

        promo = _promo(end_date=now - timedelta(seconds=1), minimum_order_amount=Decimal("100"))
        assert check_promo(promo, Decimal("10"), 0, now) == ErrorCode.EXPIRED

        promo = _promo(start_date=now + timedelta(days=1), end_date=now + timedelta(days=2))
        assert check_promo(promo, Decimal("10"), 0, now) == ErrorCode.NOT_YET_STARTED

        promo = _promo(minimum_order_amount=Decimal("50"), max_usage=1, current_usage=1)
        assert check_promo(promo, Decimal("40"), 3, now) == ErrorCode.BELOW_MINIMUM

        promo = _promo(max_usage=1, current_usage=1)
        assert check_promo(promo, Decimal("40"), 3, now) == ErrorCode.LIMIT_REACHED

        assert check_promo(_promo(), Decimal("40"), 1, now) == ErrorCode.PER_USER_LIMIT_REACHED
        assert check_promo(_promo(), Decimal("40"), 0, now) is None

    def test_capped_percentage_promo_on_hundred(self):
        promo = _promo(
            code="SAVE10",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            max_discount=Decimal("5"),
            minimum_order_amount=Decimal("20"),
        )
        assert check_promo(promo, Decimal("100"), 0) is None
        discount = compute_discount(promo, Decimal("100"))
        assert discount == Decimal("5.00")
        assert Decimal("100") - discount == Decimal("95.00")

    def test_unlimited_usage_ignores_counter(self):
        assert check_promo(_promo(max_usage=-1, current_usage=10_000), Decimal("40"), 0) is None


class TestValidatePromoCode:

    async def test_valid_code_returns_discount(self, db, student, make_promo):
        await make_promo("SAVE10")
        result = await promo_service.validate_promo_code(db, "save10", Decimal("60"), student.id)
        assert result.valid
        assert result.discount == Decimal("10.00")
        assert result.promo.code == "SAVE10"

    async def test_below_minimum(self, db, student, make_promo):
        await make_promo("SAVE10")
        result = await promo_service.validate_promo_code(db, "SAVE10", Decimal("40"), student.id)
        assert not result.valid
        assert result.reason == ErrorCode.BELOW_MINIMUM
        assert "50.00" in result.message

    async def test_unknown_code(self, db, student):
        result = await promo_service.validate_promo_code(db, "NOPE", Decimal("40"), student.id)
        assert not result.valid
        assert result.reason == ErrorCode.NOT_FOUND
        assert result.promo is None

    async def test_validation_does_not_consume(self, db, student, make_promo):
        promo = await make_promo("SAVE10", max_usage=1)
        for _ in range(3):
            result = await promo_service.validate_promo_code(db, "SAVE10", Decimal("60"), student.id)
            assert result.valid
        await db.refresh(promo)
        assert promo.current_usage == 0


class TestRedeemPromo:

    async def test_redeem_increments_usage(self, db, student, make_promo, make_order):
        promo = await make_promo("SAVE10")
        order = await make_order(student)

        redemption = await promo_service.redeem_promo(db, promo.id, student.id, order.id, discount=Decimal("10"))
        assert redemption.order_id == order.id

        promo = await promo_service.get_promo_by_id(db, promo.id)
        assert promo.current_usage == 1

    async def test_redeem_is_idempotent_per_order(self, db, student, make_promo, make_order):
        promo = await make_promo("SAVE10", max_usage_per_user=5)
        order = await make_order(student)

        first = await promo_service.redeem_promo(db, promo.id, student.id, order.id)
        second = await promo_service.redeem_promo(db, promo.id, student.id, order.id)
        assert first.id == second.id

        promo = await promo_service.get_promo_by_id(db, promo.id)
        assert promo.current_usage == 1

    async def test_other_promo_on_same_order_is_rejected(self, db, student, make_promo, make_order):
        promo_a = await make_promo("AAA")
        promo_b = await make_promo("BBB")
        order = await make_order(student)

        await promo_service.redeem_promo(db, promo_a.id, student.id, order.id)
        with pytest.raises(PromoError) as exc:
            await promo_service.redeem_promo(db, promo_b.id, student.id, order.id)
        assert exc.value.code == ErrorCode.ORDER_ALREADY_REDEEMED

    async def test_per_user_limit(self, db, student, make_promo, make_order):
        promo = await make_promo("ONCE", max_usage_per_user=1)
        first_order = await make_order(student)
        second_order = await make_order(student)
        promo_id, student_id = promo.id, student.id

        await promo_service.redeem_promo(db, promo_id, student_id, first_order.id)
        with pytest.raises(PromoError) as exc:
            await promo_service.redeem_promo(db, promo_id, student_id, second_order.id)
        assert exc.value.code == ErrorCode.PER_USER_LIMIT_REACHED

        # the rejected attempt rolled back its increment
        promo = await promo_service.get_promo_by_id(db, promo_id)
        assert promo.current_usage == 1

    async def test_inactive_promo_cannot_be_redeemed(self, db, student, make_promo, make_order):
        promo = await make_promo("OFF", is_active=False)
        order = await make_order(student)
        with pytest.raises(PromoError) as exc:
            await promo_service.redeem_promo(db, promo.id, student.id, order.id)
        assert exc.value.code == ErrorCode.INACTIVE

    async def test_expired_promo_cannot_be_redeemed(self, db, student, make_promo, make_order):
        promo = await make_promo(
            "LATE", start_date=utcnow() - timedelta(days=10), end_date=utcnow() - timedelta(seconds=5)
        )
        order = await make_order(student)
        with pytest.raises(PromoError) as exc:
            await promo_service.redeem_promo(db, promo.id, student.id, order.id)
        assert exc.value.code == ErrorCode.EXPIRED

    async def test_future_promo_cannot_be_redeemed(self, db, student, make_promo, make_order):
        promo = await make_promo(
            "SOON", start_date=utcnow() + timedelta(days=1), end_date=utcnow() + timedelta(days=2)
        )
        order = await make_order(student)
        promo_id = promo.id
        with pytest.raises(PromoError) as exc:
            await promo_service.redeem_promo(db, promo_id, student.id, order.id)
        assert exc.value.code == ErrorCode.NOT_YET_STARTED

        promo = await promo_service.get_promo_by_id(db, promo_id)
        assert promo.current_usage == 0

    async def test_concurrent_redemptions_never_exceed_max_usage(self, session_factory, make_user, make_promo, make_order):
        promo = await make_promo("LASTONE", max_usage=1)
        users = [await make_user() for _ in range(6)]
        orders = [await make_order(user) for user in users]

        async def attempt(user, order):
            async with session_factory() as session:
                try:
                    await promo_service.redeem_promo(session, promo.id, user.id, order.id)
                    return True
                except PromoError as exc:
                    assert exc.code == ErrorCode.LIMIT_REACHED
                    return False

        results = await asyncio.gather(*(attempt(u, o) for u, o in zip(users, orders)))
        assert results.count(True) == 1

        async with session_factory() as session:
            fresh = await promo_service.get_promo_by_id(session, promo.id)
            assert fresh.current_usage == 1
            count = (await session.execute(
                select(func.count(PromoRedemption.id)).where(PromoRedemption.promo_id == promo.id)
            )).scalar_one()
            assert count == 1


class TestPromoAdmin:

    async def test_stats(self, db, student, make_promo, make_order):
        used = await make_promo("USED", max_usage_per_user=3)
        await make_promo("OLD", is_active=False, end_date=utcnow() - timedelta(days=1),
                         start_date=utcnow() - timedelta(days=10))
        order = await make_order(student)
        await promo_service.redeem_promo(db, used.id, student.id, order.id)

        stats = await promo_service.get_promo_stats(db)
        assert stats["total_promos"] == 2
        assert stats["active_promos"] == 1
        assert stats["expired_promos"] == 1
        assert stats["total_usage"] == 1
        assert [p.code for p in stats["top_promos"]] == ["USED"]

    async def test_reactivate_expired_is_refused(self, db, admin, make_promo):
        promo = await make_promo("GONE", is_active=False, end_date=utcnow() - timedelta(days=1),
                                 start_date=utcnow() - timedelta(days=10))
        with pytest.raises(PromoError) as exc:
            await promo_service.reactivate_promo(db, promo.id, admin)
        assert exc.value.code == ErrorCode.EXPIRED

    async def test_update_cannot_switch_on_expired_promo(self, db, admin, make_promo):
        promo = await make_promo("STALE", is_active=False, end_date=utcnow() - timedelta(days=1),
                                 start_date=utcnow() - timedelta(days=10))
        promo_id = promo.id
        with pytest.raises(PromoError) as exc:
            await promo_service.update_promo(db, promo_id, PromoUpdate(is_active=True), admin)
        assert exc.value.code == ErrorCode.EXPIRED

        promo = await promo_service.get_promo_by_id(db, promo_id)
        assert promo.is_active is False
        stats = await promo_service.get_promo_stats(db)
        assert stats["active_promos"] == 0

    async def test_update_can_extend_and_reactivate(self, db, admin, make_promo):
        promo = await make_promo("AGAIN", is_active=False, end_date=utcnow() - timedelta(days=1),
                                 start_date=utcnow() - timedelta(days=10))
        payload = PromoUpdate(is_active=True, end_date=utcnow() + timedelta(days=7))
        promo = await promo_service.update_promo(db, promo.id, payload, admin)
        assert promo.is_active is True
        assert not promo.is_expired

    async def test_deactivate_keeps_row(self, db, admin, make_promo):
        promo = await make_promo("BYE")
        await promo_service.deactivate_promo(db, promo.id, admin)
        promo = await promo_service.get_promo_by_id(db, promo.id)
        assert promo is not None
        assert promo.is_active is False


async def test_orders_table_is_referenced_by_redemptions(db, student, make_promo):
    promo = await make_promo("FK")
    # redemption requires a real order row
    order = Order(user_id=student.id, items=[], subtotal=Decimal("60"), amount=Decimal("60"))
    db.add(order)
    await db.commit()
    await promo_service.redeem_promo(db, promo.id, student.id, order.id)
    redemption = (await db.execute(select(PromoRedemption).where(PromoRedemption.order_id == order.id))).scalar_one()
    assert redemption.promo_id == promo.id
