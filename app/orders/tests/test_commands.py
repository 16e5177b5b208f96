"""Tests for the orders management commands."""

from io import StringIO

import pytest
from django.core.management import CommandError, call_command


class TestGenerateCallbackSecret:
    """Tests for generate_callback_secret."""

    def test_prints_64_hex_characters_by_default(self):
        stdout, stderr = StringIO(), StringIO()

        call_command("generate_callback_secret", stdout=stdout, stderr=stderr)

        secret = stdout.getvalue().strip()
        assert len(secret) == 64
        int(secret, 16)
        assert "VIPPS_CALLBACK_SECRET" in stderr.getvalue()

    def test_custom_length(self):
        stdout = StringIO()

        call_command("generate_callback_secret", "--bytes", "48", stdout=stdout, stderr=StringIO())

        assert len(stdout.getvalue().strip()) == 96

    def test_secrets_differ(self):
        first, second = StringIO(), StringIO()

        call_command("generate_callback_secret", stdout=first, stderr=StringIO())
        call_command("generate_callback_secret", stdout=second, stderr=StringIO())

        assert first.getvalue() != second.getvalue()

    def test_rejects_short_secret(self):
        with pytest.raises(CommandError):
            call_command("generate_callback_secret", "--bytes", "8", stderr=StringIO())
