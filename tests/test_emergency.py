"""
tests/test_emergency.py
Emergency profile, edit form and actions.
"""

import json
import threading
import time
import urllib.parse
from unittest.mock import MagicMock

import pytest

from lifevault.emergency import (
    EMERGENCY_MESSAGE,
    EmergencyEditForm,
    EmergencyProfile,
    EmergencyStore,
    call_uri,
    emergency_card,
    perform_action,
    qr_payload,
    sms_uri,
)
from lifevault.errors import ContactError, ValidationError
from lifevault.models.record import EmergencyContact


class TestEditForm:
    def test_array_add_trims_and_ignores_blank(self):
        form = EmergencyEditForm("medical", EmergencyProfile().medical)
        form.array_add("allergies", "  Latex  ")
        form.array_add("allergies", "   ")
        form.array_add("allergies", "")
        assert form.save().allergies == ["Penicillin", "Shellfish", "Latex"]

    def test_array_add_keeps_duplicates(self):
        form = EmergencyEditForm("medical", EmergencyProfile().medical)
        form.array_add("medications", "Metformin")
        assert form.save().medications.count("Metformin") == 2

    def test_array_remove(self):
        form = EmergencyEditForm("medical", EmergencyProfile().medical)
        form.array_remove("conditions", 0)
        assert form.save().conditions == ["Hypertension"]

    def test_array_remove_out_of_range_is_noop(self):
        form = EmergencyEditForm("medical", EmergencyProfile().medical)
        form.array_remove("conditions", 5)
        form.array_remove("conditions", -1)
        assert form.save().conditions == ["Type 2 Diabetes", "Hypertension"]

    def test_array_ops_only_in_medical_mode(self):
        form = EmergencyEditForm("contact", EmergencyProfile().contact)
        with pytest.raises(ValidationError):
            form.array_add("allergies", "Dust")

    def test_edits_do_not_touch_source_until_saved(self):
        profile = EmergencyProfile()
        form = EmergencyEditForm("medical", profile.medical)
        form.array_add("allergies", "Latex")
        form.set_field("blood_group", "O-")
        assert profile.medical.blood_group == "A+"
        assert "Latex" not in profile.medical.allergies

    def test_unknown_mode_and_field(self):
        with pytest.raises(ValidationError):
            EmergencyEditForm("pets", {})
        form = EmergencyEditForm("insurance", {"provider": "X"})
        with pytest.raises(ValidationError):
            form.set_field("premium", "100")


class TestEmergencyStore:
    def test_defaults_and_isolation(self):
        store = EmergencyStore()
        store.update("u1", "contact", {"name": "Jane Roe", "phone": "911"})
        assert store.get("u1").contact.name == "Jane Roe"
        assert store.get("u2").contact.name == "Dr. Sarah Johnson"

    def test_update_medical_lists(self):
        store = EmergencyStore()
        profile = store.update("u1", "medical", {"allergies": [" Nuts ", ""], "blood_group": "B+"})
        assert profile.medical.allergies == ["Nuts"]
        assert profile.medical.blood_group == "B+"

    def test_reset(self):
        store = EmergencyStore()
        store.update("u1", "insurance", {"provider": "Acme"})
        store.reset("u1")
        assert store.get("u1").insurance.provider == "HealthCare Plus"

    def test_concurrent_edits_to_same_mode_both_persist(self, monkeypatch):
        store = EmergencyStore()
        original_set = EmergencyEditForm.set_field

        def slow_set(form, name, value):
            time.sleep(0.05)
            original_set(form, name, value)

        monkeypatch.setattr(EmergencyEditForm, "set_field", slow_set)
        workers = [
            threading.Thread(target=store.update, args=("u1", "insurance", {"provider": "Acme"})),
            threading.Thread(target=store.update, args=("u1", "insurance", {"policy_number": "P-42"})),
        ]
        for w in workers:
            w.start()
        for w in workers:
            w.join()

        insurance = store.get("u1").insurance
        assert insurance.provider == "Acme"
        assert insurance.policy_number == "P-42"


class TestEmergencyActions:
    def test_call_and_sms(self):
        profile = EmergencyProfile()
        assert call_uri(profile) == "tel:+1 (555) 123-4567"
        uri = sms_uri(profile)
        assert uri.startswith("sms:+1 (555) 123-4567?body=")
        assert urllib.parse.unquote(uri.split("body=", 1)[1]) == EMERGENCY_MESSAGE

    def test_no_phone(self):
        profile = EmergencyProfile(contact=EmergencyContact(name="Nobody"))
        with pytest.raises(ContactError):
            call_uri(profile)

    def test_card_and_qr(self):
        profile = EmergencyProfile()
        card = emergency_card(profile)
        assert "Blood Group: A+" in card
        assert "Penicillin, Shellfish" in card
        data = json.loads(qr_payload(profile))
        assert data["blood"] == "A+"
        assert data["insurance"]["policy"] == "HP-2024-789456"

    def test_action_logs_emergency_activity(self):
        activity = MagicMock()
        perform_action("call", EmergencyProfile(), "u1", activity)
        kwargs = activity.log.call_args.kwargs
        assert activity.log.call_args.args == ("u1",)
        assert kwargs["category"] == "emergency"
        assert kwargs["action_type"] == "called"

    def test_unknown_action(self):
        with pytest.raises(ValidationError):
            perform_action("teleport", EmergencyProfile())
