"""
Synthetic e-commerce events

sample(rng) draws one DomainEvent: a variant chosen uniformly from
{order, payment, inventory, user_session}, a payload of randomized fields, the
dimensions to group it by, and the measurements to emit for it. Every event
also carries four synthetic "system" measurements.

All numeric draws are inclusive integer draws via rng.randint(lo, hi).
"""

from __future__ import annotations

import random
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from aws_embedded_metrics.logger.metrics_logger import MetricsLogger
from aws_embedded_metrics.unit import Unit
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

BASE_DIMENSIONS: Dict[str, str] = {
    "Service": "EcommerceApp",
    "Environment": "Production",
    "Region": "us-west-2",
}

PAYMENT_METHODS = ["credit_card", "debit_card", "paypal", "crypto"]
# 3 of 4 slots succeed: 75% success rate
PAYMENT_STATUSES = ["success", "success", "success", "failed"]
DEVICE_TYPES = ["mobile", "desktop", "tablet"]
BROWSERS = ["chrome", "firefox", "safari", "edge"]
LOCATIONS = ["us-east-1", "us-west-2", "eu-west-1", "ap-southeast-1"]


class Variant(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"
    INVENTORY = "inventory"
    USER_SESSION = "user_session"


class Payload(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class OrderData(Payload):
    order_id: str
    items: int
    total: float
    currency: str = "USD"


class PaymentData(Payload):
    payment_id: str
    method: str
    status: str
    processing_time: int


class InventoryData(Payload):
    product_id: str
    quantity: int
    warehouse: str
    reorder_point: int


class SessionData(Payload):
    user_id: str
    device_type: str
    browser: str
    location: str


class Measurement(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: Union[int, float]
    unit: Unit


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    variant: Variant
    timestamp_ms: int
    payload: Union[OrderData, PaymentData, InventoryData, SessionData]
    dimension_items: Tuple[Tuple[str, str], ...]
    measurements: Tuple[Measurement, ...]

    @property
    def dimensions(self) -> Dict[str, str]:
        """A fresh dict each call; the event itself stays unchanged."""
        return dict(self.dimension_items)

    @property
    def property_name(self) -> str:
        return PROPERTY_NAMES[self.variant]

    def measurement(self, name: str) -> Measurement:
        for m in self.measurements:
            if m.name == name:
                return m
        raise KeyError(name)

    def apply_to(self, metrics: MetricsLogger, namespace: str) -> MetricsLogger:
        """Write this event into a metrics logger (does not flush)."""
        metrics.set_namespace(namespace)
        metrics.set_timestamp(datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc))
        metrics.set_dimensions(self.dimensions)
        for m in self.measurements:
            metrics.put_metric(m.name, m.value, m.unit.value)
        metrics.set_property(self.property_name, self.payload.model_dump(by_alias=True))
        return metrics


PROPERTY_NAMES: Dict[Variant, str] = {
    Variant.ORDER: "orderData",
    Variant.PAYMENT: "paymentData",
    Variant.INVENTORY: "inventoryData",
    Variant.USER_SESSION: "sessionData",
}


def cents_to_currency(cents: int) -> float:
    return round(cents / 100, 2)


def sample_order(rng: random.Random, timestamp_ms: int):
    data = OrderData(
        order_id=f"ord_{timestamp_ms}_{rng.randint(1, 1000)}",
        items=rng.randint(1, 10),
        total=cents_to_currency(rng.randint(1000, 50000)),
    )
    measurements = [
        Measurement(name="OrderValue", value=data.total, unit=Unit.NONE),
        Measurement(name="ItemsPerOrder", value=data.items, unit=Unit.COUNT),
        Measurement(name="OrderProcessingTime", value=rng.randint(500, 3000), unit=Unit.MILLISECONDS),
        Measurement(name="CartAbandonmentRate", value=rng.randint(20, 40), unit=Unit.PERCENT),
    ]
    return data, {}, measurements


def sample_payment(rng: random.Random, timestamp_ms: int):
    data = PaymentData(
        payment_id=f"pay_{timestamp_ms}_{rng.randint(1, 1000)}",
        method=rng.choice(PAYMENT_METHODS),
        status=rng.choice(PAYMENT_STATUSES),
        processing_time=rng.randint(100, 2000),
    )
    dimensions = {"PaymentMethod": data.method, "PaymentStatus": data.status}
    measurements = [
        Measurement(name="PaymentProcessingTime", value=data.processing_time, unit=Unit.MILLISECONDS),
        Measurement(name="PaymentSuccess", value=int(data.status == "success"), unit=Unit.COUNT),
        Measurement(name="PaymentFailure", value=int(data.status == "failed"), unit=Unit.COUNT),
        Measurement(
            name="TransactionValue",
            value=cents_to_currency(rng.randint(1000, 50000)),
            unit=Unit.NONE,
        ),
    ]
    return data, dimensions, measurements


def sample_inventory(rng: random.Random, timestamp_ms: int):
    data = InventoryData(
        product_id=f"prod_{rng.randint(1, 10000)}",
        quantity=rng.randint(0, 1000),
        warehouse=f"wh_{rng.randint(1, 5)}",
        reorder_point=rng.randint(50, 200),
    )
    measurements = [
        Measurement(name="StockLevel", value=data.quantity, unit=Unit.COUNT),
        Measurement(name="StockValue", value=data.quantity * rng.randint(10, 100), unit=Unit.NONE),
        Measurement(name="OutOfStock", value=int(data.quantity == 0), unit=Unit.COUNT),
        Measurement(name="LowStock", value=int(data.quantity < data.reorder_point), unit=Unit.COUNT),
    ]
    return data, {"Warehouse": data.warehouse}, measurements


def sample_session(rng: random.Random, timestamp_ms: int):
    data = SessionData(
        user_id=f"user_{rng.randint(1, 1000000)}",
        device_type=rng.choice(DEVICE_TYPES),
        browser=rng.choice(BROWSERS),
        location=rng.choice(LOCATIONS),
    )
    dimensions = {"DeviceType": data.device_type, "Browser": data.browser}
    measurements = [
        Measurement(name="SessionDuration", value=rng.randint(10, 3600), unit=Unit.SECONDS),
        Measurement(name="PageViews", value=rng.randint(1, 50), unit=Unit.COUNT),
        Measurement(name="BounceRate", value=rng.randint(20, 80), unit=Unit.PERCENT),
        Measurement(name="LoadTime", value=rng.randint(100, 2000), unit=Unit.MILLISECONDS),
    ]
    return data, dimensions, measurements


SAMPLERS = {
    Variant.ORDER: sample_order,
    Variant.PAYMENT: sample_payment,
    Variant.INVENTORY: sample_inventory,
    Variant.USER_SESSION: sample_session,
}


def system_measurements(rng: random.Random):
    # Synthetic, not real host telemetry
    return [
        Measurement(name="CPUUtilization", value=rng.randint(20, 95), unit=Unit.PERCENT),
        Measurement(name="MemoryUtilization", value=rng.randint(30, 85), unit=Unit.PERCENT),
        Measurement(name="LatencyP95", value=rng.randint(50, 500), unit=Unit.MILLISECONDS),
        Measurement(name="ErrorRate", value=rng.randint(0, 5), unit=Unit.PERCENT),
    ]


def sample(rng: random.Random, timestamp_ms: Optional[int] = None) -> DomainEvent:
    """Draw one synthetic event. Only consumes entropy from rng."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    variant = rng.choice(list(Variant))
    data, extra_dimensions, measurements = SAMPLERS[variant](rng, timestamp_ms)
    return DomainEvent(
        variant=variant,
        timestamp_ms=timestamp_ms,
        payload=data,
        dimension_items=tuple({**BASE_DIMENSIONS, **extra_dimensions}.items()),
        measurements=tuple(measurements + system_measurements(rng)),
    )
