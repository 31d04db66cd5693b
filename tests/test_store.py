"""Property-based tests for the alert store.

**Feature: price-alerts**
"""

import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from coinwatch.db import AlertStore, canonical_price, normalize_symbol
from coinwatch.errors import (
    AlertAlreadyExistsError,
    AlertNotFoundError,
    AlertStateError,
    AlertStoreError,
    UserNotFoundError,
)
from coinwatch.models import Direction

symbols = st.from_regex(r"[A-Z][A-Z0-9]{0,9}", fullmatch=True)
prices = st.decimals(min_value=Decimal("0.00000001"), max_value=Decimal("1000000"), places=8)


@pytest.fixture
def temp_store():
    """Create a temporary store for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield AlertStore(Path(tmpdir) / "test.db")


@pytest.fixture
def user(temp_store: AlertStore):
    return temp_store.create_user("Alice", "alice@example.com", device_token="token-alice")


class TestSchemaCompleteness:
    """
    **Feature: price-alerts, Property: Schema Completeness**

    *For any* fresh database, the users and alerts tables should exist.
    """

    def test_schema_completeness(self, temp_store: AlertStore):
        tables = temp_store.get_tables()
        for table in AlertStore.REQUIRED_TABLES:
            assert table in tables, f"Required table '{table}' is missing"


class TestCanonicalPrice:
    """
    **Feature: price-alerts, Property: Price Canonicalization**

    *For any* positive decimal, numerically equal spellings map to the same
    stored text.
    """

    @given(price=prices.filter(lambda p: p > 0))
    @settings(max_examples=100)
    def test_equal_values_share_canonical_form(self, price: Decimal):
        assert canonical_price(price) == canonical_price(f"{price:.10f}")
        assert Decimal(canonical_price(price)) == price

    def test_trailing_zeros_collapse(self):
        assert canonical_price("45000.00") == canonical_price(45000) == "45000"

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "NaN", "Infinity"])
    def test_rejects_non_positive_or_non_numeric(self, value):
        with pytest.raises(ValueError):
            canonical_price(value)

    def test_normalize_symbol(self):
        assert normalize_symbol(" btc ") == "BTC"
        with pytest.raises(ValueError):
            normalize_symbol("BTC-USD")


class TestUsers:
    def test_create_and_get_user(self, temp_store: AlertStore):
        created = temp_store.create_user("Bob", "Bob@Example.com")
        fetched = temp_store.get_user(created.id)
        assert fetched == created
        assert fetched.email == "bob@example.com"
        assert fetched.device_token is None

    def test_duplicate_email_rejected(self, temp_store: AlertStore, user):
        with pytest.raises(AlertStoreError):
            temp_store.create_user("Other", "alice@example.com")

    def test_set_and_clear_device_token(self, temp_store: AlertStore, user):
        assert temp_store.set_device_token(user.id, "new-token").device_token == "new-token"
        assert temp_store.set_device_token(user.id, None).device_token is None

    def test_set_device_token_unknown_user(self, temp_store: AlertStore):
        with pytest.raises(UserNotFoundError):
            temp_store.set_device_token("missing", "token")


class TestActiveAlertUniqueness:
    """
    **Feature: price-alerts, Property: Active Alert Uniqueness**

    *For any* (user, symbol, price, direction), at most one active alert
    exists at a time.
    """

    @given(symbol=symbols, price=prices.filter(lambda p: p > 0), direction=st.sampled_from(list(Direction)))
    @settings(max_examples=30, deadline=None)
    def test_duplicate_active_alert_rejected(self, symbol, price, direction):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = AlertStore(Path(tmpdir) / "test.db")
            owner = store.create_user("Alice", "alice@example.com")

            store.create_alert(owner.id, symbol, price, direction)
            with pytest.raises(AlertAlreadyExistsError):
                store.create_alert(owner.id, symbol.lower(), f"{price:.10f}", direction)

            assert len(store.list_alerts(user_id=owner.id, active=True)) == 1

    def test_same_values_allowed_for_other_direction_or_user(self, temp_store: AlertStore, user):
        other = temp_store.create_user("Bob", "bob@example.com")
        temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_DOWN)
        temp_store.create_alert(other.id, "BTC", 50000, Direction.CROSS_UP)
        assert len(temp_store.list_alerts(active=True)) == 3

    def test_fired_alert_does_not_block_new_one(self, temp_store: AlertStore, user):
        first = temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        assert temp_store.deactivate_triggered_alert(first.id)
        second = temp_store.create_alert(user.id, "BTC", "50000.0", Direction.CROSS_UP)
        assert second.active

    def test_reactivation_checks_uniqueness(self, temp_store: AlertStore, user):
        first = temp_store.create_alert(user.id, "ETH", 3000, Direction.CROSS_DOWN)
        temp_store.deactivate_alert(first.id)
        temp_store.create_alert(user.id, "ETH", 3000, Direction.CROSS_DOWN)
        with pytest.raises(AlertAlreadyExistsError):
            temp_store.activate_alert(first.id)

    def test_update_into_duplicate_rejected(self, temp_store: AlertStore, user):
        temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        other = temp_store.create_alert(user.id, "BTC", 60000, Direction.CROSS_UP)
        with pytest.raises(AlertAlreadyExistsError):
            temp_store.update_alert(other.id, user.id, target_price="50000.00")

    def test_inactive_alert_may_be_updated_into_duplicate(self, temp_store: AlertStore, user):
        temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        other = temp_store.create_alert(user.id, "BTC", 60000, Direction.CROSS_UP)
        temp_store.deactivate_alert(other.id)
        updated = temp_store.update_alert(other.id, user.id, target_price=50000)
        assert updated.target_price == Decimal("50000")
        assert not updated.active


class TestAlertLifecycle:
    def test_create_alert_unknown_user(self, temp_store: AlertStore):
        with pytest.raises(UserNotFoundError):
            temp_store.create_alert("missing", "BTC", 1, Direction.CROSS_UP)

    def test_create_alert_normalizes_fields(self, temp_store: AlertStore, user):
        alert = temp_store.create_alert(user.id, "btc", "45000.50", "CROSS_UP")
        assert alert.symbol == "BTC"
        assert alert.target_price == Decimal("45000.5")
        assert alert.direction == Direction.CROSS_UP
        assert alert.active
        assert alert.last_notified_at is None

    @pytest.mark.parametrize("symbol,price", [("BTC/USD", 1), ("BTC", 0), ("BTC", -5)])
    def test_create_alert_rejects_invalid_input(self, temp_store: AlertStore, user, symbol, price):
        with pytest.raises(ValueError):
            temp_store.create_alert(user.id, symbol, price, Direction.CROSS_UP)

    def test_get_alert_scoped_to_owner(self, temp_store: AlertStore, user):
        other = temp_store.create_user("Bob", "bob@example.com")
        alert = temp_store.create_alert(user.id, "SOL", 150, Direction.CROSS_UP)
        assert temp_store.get_alert(alert.id, user.id).id == alert.id
        with pytest.raises(AlertNotFoundError):
            temp_store.get_alert(alert.id, other.id)

    def test_activate_and_deactivate_state_errors(self, temp_store: AlertStore, user):
        alert = temp_store.create_alert(user.id, "SOL", 150, Direction.CROSS_UP)
        with pytest.raises(AlertStateError):
            temp_store.activate_alert(alert.id)
        temp_store.deactivate_alert(alert.id)
        with pytest.raises(AlertStateError):
            temp_store.deactivate_alert(alert.id)
        assert temp_store.activate_alert(alert.id).active

    def test_delete_alert(self, temp_store: AlertStore, user):
        alert = temp_store.create_alert(user.id, "ADA", "0.45", Direction.CROSS_DOWN)
        temp_store.delete_alert(alert.id, user.id)
        with pytest.raises(AlertNotFoundError):
            temp_store.get_alert(alert.id)

    def test_list_alerts_filters(self, temp_store: AlertStore, user):
        temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        eth = temp_store.create_alert(user.id, "ETH", 3000, Direction.CROSS_UP)
        temp_store.deactivate_alert(eth.id)

        assert [a.symbol for a in temp_store.list_alerts(symbol="bt")] == ["BTC"]
        assert [a.symbol for a in temp_store.list_alerts(active=False)] == ["ETH"]
        assert len(temp_store.list_alerts(user_id=user.id)) == 2

    def test_touch_last_notified_keeps_state(self, temp_store: AlertStore, user):
        alert = temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        touched = temp_store.touch_last_notified(alert.id)
        assert touched.active
        assert touched.last_notified_at is not None


class TestTriggeredAlertDeactivation:
    """
    **Feature: price-alerts, Property: Fire-Once Deactivation**

    *For any* active alert, deactivating it as fired sets it inactive with a
    notification time, and repeating the call changes nothing.
    """

    def test_deactivate_triggered_alert(self, temp_store: AlertStore, user):
        alert = temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        notified_at = datetime(2024, 5, 1, 12, 30)

        assert temp_store.deactivate_triggered_alert(alert.id, notified_at) is True
        stored = temp_store.get_alert(alert.id)
        assert not stored.active
        assert stored.last_notified_at == notified_at

        assert temp_store.deactivate_triggered_alert(alert.id) is False
        assert temp_store.get_alert(alert.id).last_notified_at == notified_at

    def test_unknown_alert_is_noop(self, temp_store: AlertStore):
        assert temp_store.deactivate_triggered_alert("missing") is False

    def test_find_active_alerts_joins_device_token(self, temp_store: AlertStore, user):
        tokenless = temp_store.create_user("Bob", "bob@example.com")
        temp_store.create_alert(user.id, "BTC", 50000, Direction.CROSS_UP)
        temp_store.create_alert(tokenless.id, "ETH", 3000, Direction.CROSS_DOWN)
        fired = temp_store.create_alert(user.id, "SOL", 100, Direction.CROSS_UP)
        temp_store.deactivate_triggered_alert(fired.id)

        active = temp_store.find_active_alerts()
        tokens = {a.symbol: a.device_token for a in active}
        assert tokens == {"BTC": "token-alice", "ETH": None}

        found = temp_store.find_alert(fired.id)
        assert found is not None and not found.active
        assert temp_store.find_alert("missing") is None
