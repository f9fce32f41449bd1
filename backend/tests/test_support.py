"""Tests for settings loading, site settings cache and the rule-based chatbot."""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from rentalhub.core import rental_lifecycle
from rentalhub.core.errors import NotFound
from rentalhub.core.site_settings import get_site_settings, update_site_settings
from rentalhub.core.support_chat import (
    ChatContext,
    analyze_intent,
    build_client_context,
    build_system_prompt,
    rule_based_reply,
)
from rentalhub.utils import settings_loader


class TestSettingsLoader:
    def test_file_values_merged_over_defaults(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("currency_symbol: '$'\nbackup:\n  trash_after_days: 3\n", encoding="utf-8")
        monkeypatch.setenv("RENTALHUB_SETTINGS_PATH", str(path))
        monkeypatch.delenv("BACKUP_DIR", raising=False)
        settings_loader.clear_settings_cache()

        backup = settings_loader.get_backup_settings()
        assert backup["trash_after_days"] == 3
        assert backup["delete_after_days"] == 7
        assert settings_loader.format_currency(Decimal("1234.5")) == "$1,234.50"

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RENTALHUB_SETTINGS_PATH", str(tmp_path / "absent.yaml"))
        settings_loader.clear_settings_cache()
        assert settings_loader.load_settings()["currency_symbol"] == "₱"

    def test_backup_dir_env_wins(self, monkeypatch):
        monkeypatch.setenv("BACKUP_DIR", "/srv/backups")
        assert settings_loader.get_backup_settings()["directory"] == "/srv/backups"


class TestSiteSettings:
    def test_cache_invalidated_on_write(self, db):
        assert get_site_settings(db)["site_name"] == "RentalHub"
        update_site_settings(db, {"site_name": "Makati Rentals"})
        assert get_site_settings(db)["site_name"] == "Makati Rentals"


class TestIntent:
    @pytest.mark.parametrize(
        "message, intent",
        [
            ("When does my lease end?", "rental_inquiry"),
            ("How do I pay this month?", "payment_inquiry"),
            ("I want to update my profile", "account_inquiry"),
            ("What is your phone number?", "support_inquiry"),
            ("Hello there", "greeting"),
            ("Thanks a lot", "thanks"),
            ("I'm looking for a condo", "browse_properties"),
            ("Tell me a joke", "general_inquiry"),
        ],
    )
    def test_analyze_intent(self, message, intent):
        assert analyze_intent(message) == intent


class TestRuleBasedReply:
    def test_guest_without_rentals(self):
        reply = rule_based_reply("Show me my rentals", ChatContext())
        assert reply.startswith("You don't have any active rentals")

    def test_support_uses_site_contact(self):
        ctx = ChatContext(contact_email="help@rentalhub.local", contact_phone="+63 2 8123 4567")
        reply = rule_based_reply("I need support", ctx)
        assert "help@rentalhub.local" in reply
        assert "+63 2 8123 4567" in reply

    def test_client_context(self, db, make_property, make_client):
        prop = make_property()
        tenant = make_client()
        today = date.today()
        rental_lifecycle.create_rental(
            db, tenant.id, prop.id, today - timedelta(days=30), today + timedelta(days=3)
        )

        ctx = build_client_context(db, tenant.id)

        assert ctx.active_rentals == 1
        assert ctx.rentals[0].remarks == "Due Soon"
        reply = rule_based_reply("When is my payment due?", ctx)
        assert "Sunset Villa is Due Soon" in reply
        assert "Rental #" in build_system_prompt(ctx)

    def test_unknown_client(self, db):
        with pytest.raises(NotFound):
            build_client_context(db, 404)
