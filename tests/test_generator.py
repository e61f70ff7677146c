"""Tests for password generation."""

import pytest

from credguard.core.constants import SPECIAL_CHARACTERS
from credguard.core.models import PasswordPolicyConfig
from credguard.security.generator import generate_for_policy, generate_password
from credguard.security.policy import PolicyEngine


class TestGeneratePassword:
    def test_contains_every_class(self):
        for _ in range(50):
            secret = generate_password(16)
            assert len(secret) == 16
            assert any(c.isupper() for c in secret)
            assert any(c.islower() for c in secret)
            assert any(c.isdigit() for c in secret)
            assert any(c in SPECIAL_CHARACTERS for c in secret)

    def test_digits_only(self):
        assert generate_password(10, uppercase=False, lowercase=False, special=False).isdigit()

    def test_unique(self):
        assert len({generate_password() for _ in range(20)}) == 20

    @pytest.mark.parametrize("length", [3, 129])
    def test_length_bounds(self, length):
        with pytest.raises(ValueError):
            generate_password(length)

    def test_no_classes(self):
        with pytest.raises(ValueError):
            generate_password(16, uppercase=False, lowercase=False, digits=False, special=False)


class TestGenerateForPolicy:
    def test_satisfies_default_policy(self):
        config = PasswordPolicyConfig.secure_default()
        for _ in range(20):
            assert PolicyEngine.validate(generate_for_policy(config), config).is_valid

    def test_respects_min_length(self):
        assert len(generate_for_policy(PasswordPolicyConfig(min_length=40))) == 40
