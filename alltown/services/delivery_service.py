"""
Delivery Lifecycle Coordinator

Owns the delivery request state machine:

    pending -> available -> claimed -> in_progress -> completed
    pending | available | claimed -> cancelled
    claimed -> available                              (release)

Every status change is a conditional UPDATE guarded on the status the caller
observed, so two writers can never both win. A claim additionally requires the
request to be unclaimed; exactly one of several concurrent claimers succeeds
and the rest receive a 409. Each change writes a delivery_status_history row in
the same transaction, and completion credits the loyalty ledger in that
transaction as well.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.config import settings
from alltown.constants.roles import RoleName, is_driver, is_staff
from alltown.exceptions import (
    AuthorizationError,
    DeliveryAlreadyClaimedError,
    DeliveryNotFoundError,
    InvalidStatusTransitionError,
    TenantMismatchError,
    ValidationError,
)
from alltown.models.delivery_request import (
    TERMINAL_STATUSES,
    DeliveryEvent,
    DeliveryRequest,
    DeliveryStatus,
    DeliveryStatusHistory,
)
from alltown.models.user_profile import UserProfile
from alltown.schemas.delivery import DeliveryRequestCreate
from alltown.services.geocoding_service import DistanceClient
from alltown.services.loyalty_service import LoyaltyLedger
from alltown.services.pricing_service import quote
from alltown.utils.metrics import record_claim, record_transition

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.pending: frozenset({DeliveryStatus.available, DeliveryStatus.cancelled}),
    DeliveryStatus.available: frozenset({DeliveryStatus.claimed, DeliveryStatus.cancelled}),
    DeliveryStatus.claimed: frozenset(
        {DeliveryStatus.in_progress, DeliveryStatus.available, DeliveryStatus.cancelled}
    ),
    DeliveryStatus.in_progress: frozenset({DeliveryStatus.completed}),
    **{status: frozenset() for status in TERMINAL_STATUSES},
}

TRANSITION_EVENTS: dict[tuple[DeliveryStatus, DeliveryStatus], DeliveryEvent] = {
    (DeliveryStatus.pending, DeliveryStatus.available): DeliveryEvent.published,
    (DeliveryStatus.available, DeliveryStatus.claimed): DeliveryEvent.claimed,
    (DeliveryStatus.claimed, DeliveryStatus.available): DeliveryEvent.released,
    (DeliveryStatus.claimed, DeliveryStatus.in_progress): DeliveryEvent.started,
    (DeliveryStatus.in_progress, DeliveryStatus.completed): DeliveryEvent.completed,
}

# Moves only a dispatcher or admin may make
STAFF_ONLY_TARGETS = frozenset({DeliveryStatus.available, DeliveryStatus.cancelled})

REQUIRED_FIELDS = (
    "customer_name",
    "phone",
    "email",
    "pickup_address",
    "delivery_address",
    "preferred_date",
    "preferred_time",
    "payment_method",
)

ACTIVE_DRIVER_STATUSES = (DeliveryStatus.claimed.value, DeliveryStatus.in_progress.value)


def is_valid_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryCoordinator:
    """
    Delivery request lifecycle for one unit of work.

    Args:
        db: Session the coordinator commits or rolls back
        distance_client: Measures pickup-to-delivery distance (needed by create)
        ledger: Loyalty ledger sharing `db`; built on demand when omitted
        review_required_plans: Plan tiers whose new requests start as pending
    """

    def __init__(
        self,
        db: AsyncSession,
        distance_client: DistanceClient | None = None,
        ledger: LoyaltyLedger | None = None,
        review_required_plans: Iterable[str] | None = None,
    ):
        self.db = db
        self.distance_client = distance_client
        self.ledger = ledger or LoyaltyLedger(db)
        plans = settings.review_required_plans if review_required_plans is None else review_required_plans
        self.review_required_plans = frozenset(plans)

    # ============== Creation ==============

    def initial_status(self, tenant) -> DeliveryStatus:
        if tenant.plan_type in self.review_required_plans:
            return DeliveryStatus.pending
        return DeliveryStatus.available

    async def create(self, tenant, payload: DeliveryRequestCreate, user_id: str | None = None) -> DeliveryRequest:
        """
        Measure, price and persist a new delivery request for `tenant`.

        Raises:
            ValidationError: missing fields, malformed email, or no free-delivery credit
            GeocodingError: the distance service could not measure the route
        """
        self._validate_payload(payload)
        if payload.use_free_delivery and user_id is None:
            raise ValidationError("Sign in to use a free delivery", field="useFreeDelivery")
        if self.distance_client is None:
            raise RuntimeError("DeliveryCoordinator.create requires a distance client")

        distance = await self.distance_client.measure(payload.pickup_address, payload.delivery_address)
        price = quote(distance.distance_miles, payload.is_rush, tenant.fee_schedule)
        status = self.initial_status(tenant)

        delivery = DeliveryRequest(
            tenant_id=tenant.id,
            user_id=user_id,
            customer_name=payload.customer_name.strip(),
            phone=payload.phone.strip(),
            email=str(payload.email).strip(),
            pickup_address=payload.pickup_address.strip(),
            delivery_address=payload.delivery_address.strip(),
            preferred_date=payload.preferred_date.strip(),
            preferred_time=payload.preferred_time.strip(),
            payment_method=payload.payment_method.strip(),
            special_instructions=payload.special_instructions,
            is_rush=payload.is_rush,
            distance_miles=distance.distance_miles,
            duration_minutes=distance.duration_minutes,
            delivery_fee=price.display_fee,
            used_free_delivery=payload.use_free_delivery,
            status=status.value,
        )

        try:
            if payload.use_free_delivery:
                debited = await self.ledger.consume_free_delivery(user_id, tenant.id)
                if not debited:
                    raise ValidationError("No free delivery credits available", field="useFreeDelivery")
            self.db.add(delivery)
            await self.db.flush()
            self._add_history(delivery, DeliveryEvent.created, None, status, actor_id=user_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(delivery)
        logger.info(
            f"Delivery request created: id={delivery.id} tenant={tenant.id} status={status.value} "
            f"miles={delivery.distance_miles} fee={delivery.delivery_fee}"
        )
        return delivery

    @staticmethod
    def _validate_payload(payload: DeliveryRequestCreate) -> None:
        errors = []
        for name in REQUIRED_FIELDS:
            value = getattr(payload, name, None)
            if value is None or not str(value).strip():
                errors.append({"field": name, "message": f"{name.replace('_', ' ').capitalize()} is required"})
        email = getattr(payload, "email", None)
        if email and str(email).strip():
            try:
                validate_email(str(email).strip(), check_deliverability=False)
            except EmailNotValidError:
                errors.append({"field": "email", "message": "Email address is not valid"})
        if errors:
            raise ValidationError("Invalid delivery request", errors=errors)

    # ============== Queries ==============

    async def list_available(self, tenant_id: str) -> list[DeliveryRequest]:
        """Available requests of one tenant, oldest first."""
        result = await self.db.execute(
            select(DeliveryRequest)
            .where(
                DeliveryRequest.tenant_id == tenant_id,
                DeliveryRequest.status == DeliveryStatus.available.value,
            )
            .order_by(DeliveryRequest.created_at, DeliveryRequest.id)
        )
        return list(result.scalars().all())

    async def list_for_driver(self, tenant_id: str, driver_id: str) -> list[DeliveryRequest]:
        """A driver's claimed and in-progress requests."""
        result = await self.db.execute(
            select(DeliveryRequest)
            .where(
                DeliveryRequest.tenant_id == tenant_id,
                DeliveryRequest.claimed_by_driver == driver_id,
                DeliveryRequest.status.in_(ACTIVE_DRIVER_STATUSES),
            )
            .order_by(DeliveryRequest.claimed_at, DeliveryRequest.id)
        )
        return list(result.scalars().all())

    async def list_for_customer(self, tenant_id: str, user_id: str) -> list[DeliveryRequest]:
        """Requests a signed-in customer placed with one tenant, newest first."""
        result = await self.db.execute(
            select(DeliveryRequest)
            .where(DeliveryRequest.tenant_id == tenant_id, DeliveryRequest.user_id == user_id)
            .order_by(DeliveryRequest.created_at.desc(), DeliveryRequest.id)
        )
        return list(result.scalars().all())

    async def list_for_tenant(
        self,
        tenant_id: str,
        status: DeliveryStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[DeliveryRequest]:
        """Every request of a tenant, newest first, optionally filtered by status."""
        query = select(DeliveryRequest).where(DeliveryRequest.tenant_id == tenant_id)
        if status is not None:
            query = query.where(DeliveryRequest.status == status.value)
        query = query.order_by(DeliveryRequest.created_at.desc(), DeliveryRequest.id).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get(self, delivery_id: str, tenant) -> DeliveryRequest:
        """
        Fetch a request owned by `tenant`.

        Raises:
            DeliveryNotFoundError: no such request
            TenantMismatchError: the request belongs to another tenant
        """
        delivery = await self._load(delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)
        if delivery.tenant_id != tenant.id:
            raise TenantMismatchError()
        return delivery

    async def get_for_actor(self, delivery_id: str, tenant, actor: UserProfile) -> DeliveryRequest:
        """Fetch a request the actor is allowed to see."""
        delivery = await self.get(delivery_id, tenant)
        if is_staff(actor.role):
            return delivery
        if delivery.user_id is not None and delivery.user_id == actor.id:
            return delivery
        if is_driver(actor.role) and (
            delivery.claimed_by_driver == actor.id or delivery.status == DeliveryStatus.available.value
        ):
            return delivery
        raise AuthorizationError("You do not have access to this delivery request")

    async def history(self, delivery_id: str, tenant) -> list[DeliveryStatusHistory]:
        await self.get(delivery_id, tenant)
        result = await self.db.execute(
            select(DeliveryStatusHistory)
            .where(DeliveryStatusHistory.delivery_id == delivery_id)
            .order_by(DeliveryStatusHistory.id)
        )
        return list(result.scalars().all())

    # ============== Claim ==============

    async def claim(self, delivery_id: str, tenant, driver: UserProfile, notes: str | None = None) -> DeliveryRequest:
        """
        Claim an available request for `driver`.

        One conditional UPDATE decides the winner. When it matches nothing the
        request is re-read only to pick the right error.

        Raises:
            AuthorizationError: caller is not a driver
            DeliveryNotFoundError: unknown id
            TenantMismatchError: request or driver belongs to another tenant
            DeliveryAlreadyClaimedError: another driver got there first
            InvalidStatusTransitionError: request is not open for claiming
        """
        if not is_driver(driver.role):
            raise AuthorizationError("Only drivers can claim deliveries", required_roles=[RoleName.DRIVER.value])
        if driver.tenant_id != tenant.id:
            record_claim("tenant_mismatch")
            raise TenantMismatchError()

        claimed_at = _now()
        values = {
            "status": DeliveryStatus.claimed.value,
            "claimed_by_driver": driver.id,
            "claimed_at": claimed_at,
            "updated_at": claimed_at,
        }
        if notes is not None:
            values["driver_notes"] = notes

        try:
            result = await self.db.execute(
                update(DeliveryRequest)
                .where(
                    DeliveryRequest.id == delivery_id,
                    DeliveryRequest.tenant_id == tenant.id,
                    DeliveryRequest.status == DeliveryStatus.available.value,
                    DeliveryRequest.claimed_by_driver.is_(None),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                raise await self._classify_failed_claim(delivery_id, tenant)

            self._add_history_row(
                delivery_id,
                tenant.id,
                DeliveryEvent.claimed,
                DeliveryStatus.available,
                DeliveryStatus.claimed,
                actor_id=driver.id,
                note=notes,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        record_claim("claimed")
        record_transition(DeliveryStatus.available.value, DeliveryStatus.claimed.value)
        logger.info(f"Delivery {delivery_id} claimed by driver {driver.id} (tenant {tenant.id})")
        return await self._load(delivery_id)

    async def _classify_failed_claim(self, delivery_id: str, tenant) -> Exception:
        delivery = await self._load(delivery_id)
        if delivery is None:
            record_claim("not_found")
            return DeliveryNotFoundError(delivery_id)
        if delivery.tenant_id != tenant.id:
            record_claim("tenant_mismatch")
            return TenantMismatchError()
        if delivery.claimed_by_driver is not None:
            record_claim("already_claimed")
            return DeliveryAlreadyClaimedError(delivery_id)
        record_claim("invalid_status")
        return InvalidStatusTransitionError(delivery.status, DeliveryStatus.claimed.value)

    # ============== Status transitions ==============

    async def advance_status(
        self,
        delivery_id: str,
        tenant,
        actor: UserProfile,
        target: DeliveryStatus | str,
        notes: str | None = None,
    ) -> DeliveryRequest:
        """
        Move a request to `target`.

        `claimed` delegates to claim() and `claimed -> available` to release().
        Asking to complete an already completed request returns it unchanged.

        Raises:
            ValidationError: unknown target status
            InvalidStatusTransitionError: the move is not allowed, or lost a race
            AuthorizationError: actor may not make this move
        """
        try:
            target = DeliveryStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown delivery status '{target}'", field="status")

        delivery = await self.get(delivery_id, tenant)
        current = DeliveryStatus(delivery.status)

        if current == DeliveryStatus.completed and target == DeliveryStatus.completed:
            self._check_transition_permission(delivery, actor, target)
            return delivery
        if target == DeliveryStatus.claimed:
            return await self.claim(delivery_id, tenant, actor, notes=notes)
        if current == DeliveryStatus.claimed and target == DeliveryStatus.available:
            return await self.release(delivery_id, tenant, actor, notes=notes)

        if not is_valid_transition(current, target):
            raise InvalidStatusTransitionError(current.value, target.value)
        self._check_transition_permission(delivery, actor, target)

        now = _now()
        values = {"status": target.value, "updated_at": now}
        if notes is not None:
            values["driver_notes"] = notes
        event = TRANSITION_EVENTS.get((current, target), DeliveryEvent.cancelled)

        try:
            result = await self.db.execute(
                update(DeliveryRequest)
                .where(
                    DeliveryRequest.id == delivery_id,
                    DeliveryRequest.tenant_id == tenant.id,
                    DeliveryRequest.status == current.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                fresh = await self._load(delivery_id)
                raise InvalidStatusTransitionError(fresh.status if fresh else current.value, target.value)

            self._add_history_row(delivery_id, tenant.id, event, current, target, actor_id=actor.id, note=notes)
            if target == DeliveryStatus.completed:
                await self.ledger.credit_completion(delivery, tenant)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        record_transition(current.value, target.value)
        logger.info(f"Delivery {delivery_id}: {current.value} -> {target.value} by {actor.id}")
        return await self._load(delivery_id)

    @staticmethod
    def _check_transition_permission(delivery: DeliveryRequest, actor: UserProfile, target: DeliveryStatus) -> None:
        if delivery.tenant_id != actor.tenant_id:
            raise TenantMismatchError()
        if is_staff(actor.role):
            return
        if target in STAFF_ONLY_TARGETS:
            raise AuthorizationError(
                f"Only dispatchers can move a delivery to '{target.value}'",
                required_roles=[RoleName.DISPATCHER.value, RoleName.ADMIN.value],
            )
        if not (is_driver(actor.role) and delivery.claimed_by_driver == actor.id):
            raise AuthorizationError("Only the claiming driver can update this delivery")

    # ============== Release ==============

    async def release(self, delivery_id: str, tenant, actor: UserProfile, notes: str | None = None) -> DeliveryRequest:
        """Hand a claimed request back to the available pool."""
        delivery = await self.get(delivery_id, tenant)
        if delivery.status != DeliveryStatus.claimed.value:
            raise InvalidStatusTransitionError(delivery.status, DeliveryStatus.available.value)
        if delivery.tenant_id != actor.tenant_id:
            raise TenantMismatchError()
        if not is_staff(actor.role) and delivery.claimed_by_driver != actor.id:
            raise AuthorizationError("Only the claiming driver or a dispatcher can release this delivery")

        try:
            released = await self._release_one(delivery_id, tenant.id, delivery.claimed_by_driver, actor.id, notes)
            if not released:
                await self.db.rollback()
                fresh = await self._load(delivery_id)
                raise InvalidStatusTransitionError(
                    fresh.status if fresh else delivery.status, DeliveryStatus.available.value
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Delivery {delivery_id} released by {actor.id}")
        return await self._load(delivery_id)

    async def release_driver_claims(self, driver: UserProfile) -> list[str]:
        """
        Release every `claimed` request held by `driver`.

        Writes into the current transaction without committing; in-progress
        deliveries stay with the driver.
        """
        result = await self.db.execute(
            select(DeliveryRequest.id).where(
                DeliveryRequest.tenant_id == driver.tenant_id,
                DeliveryRequest.claimed_by_driver == driver.id,
                DeliveryRequest.status == DeliveryStatus.claimed.value,
            )
        )
        released = []
        for delivery_id in result.scalars().all():
            if await self._release_one(delivery_id, driver.tenant_id, driver.id, driver.id, "Driver went off duty"):
                released.append(delivery_id)
        return released

    async def _release_one(
        self,
        delivery_id: str,
        tenant_id: str,
        driver_id: str,
        actor_id: str,
        note: str | None,
    ) -> bool:
        now = _now()
        result = await self.db.execute(
            update(DeliveryRequest)
            .where(
                DeliveryRequest.id == delivery_id,
                DeliveryRequest.tenant_id == tenant_id,
                DeliveryRequest.status == DeliveryStatus.claimed.value,
                DeliveryRequest.claimed_by_driver == driver_id,
            )
            .values(
                status=DeliveryStatus.available.value,
                claimed_by_driver=None,
                claimed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self._add_history_row(
            delivery_id,
            tenant_id,
            DeliveryEvent.released,
            DeliveryStatus.claimed,
            DeliveryStatus.available,
            actor_id=actor_id,
            note=note,
        )
        record_transition(DeliveryStatus.claimed.value, DeliveryStatus.available.value)
        return True

    # ============== Helpers ==============

    async def _load(self, delivery_id: str) -> DeliveryRequest | None:
        result = await self.db.execute(
            select(DeliveryRequest)
            .where(DeliveryRequest.id == delivery_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _add_history(
        self,
        delivery: DeliveryRequest,
        event: DeliveryEvent,
        from_status: DeliveryStatus | None,
        to_status: DeliveryStatus,
        actor_id: str | None = None,
        note: str | None = None,
    ) -> None:
        self._add_history_row(delivery.id, delivery.tenant_id, event, from_status, to_status, actor_id, note)

    def _add_history_row(
        self,
        delivery_id: str,
        tenant_id: str,
        event: DeliveryEvent,
        from_status: DeliveryStatus | None,
        to_status: DeliveryStatus,
        actor_id: str | None = None,
        note: str | None = None,
    ) -> None:
        self.db.add(
            DeliveryStatusHistory(
                delivery_id=delivery_id,
                tenant_id=tenant_id,
                event=event.value,
                from_status=from_status.value if from_status is not None else None,
                to_status=to_status.value,
                actor_id=actor_id,
                note=note,
            )
        )
