#tests\test_domain_resolver.py

"""Test domain resolution and prerequisite validation."""

import json

import pytest

from orchestration_engine.core.errors import OrchestrationValidationError
from orchestration_engine.domains.resolver import DomainResolver, load_catalog

from tests.conftest import ACCOUNT_ID, CATALOG, ZONE_ID, FakeDatabaseGateway, domain_config


@pytest.fixture
def resolver():
    return DomainResolver(CATALOG, database_gateway=FakeDatabaseGateway(existing={"alpha-db"}))


class TestResolveDomain:
    """Test resolution."""

    def test_known_domain(self, resolver):
        """Test catalog names resolve to immutable domains."""
        domain = resolver.resolve_domain("Alpha.Example.com")

        assert domain.name == "alpha.example.com"
        assert domain.database_for("production").name == "alpha-db"
        with pytest.raises(TypeError):
            domain.databases["production"] = None

    def test_resolution_is_cached(self, resolver):
        """Test the same object is returned twice."""
        assert resolver.resolve_domain("alpha.example.com") is resolver.resolve_domain("alpha.example.com")

    def test_unknown_domain_raises(self, resolver):
        """Test unknown names without inline config are rejected."""
        with pytest.raises(OrchestrationValidationError, match="Unknown domain"):
            resolver.resolve_domain("nope.example.com")

    def test_inline_configuration(self, resolver):
        """Test inline configs resolve without a catalog entry."""
        domain = resolver.resolve_domain(domain_config("inline.example.com"))
        assert domain.name == "inline.example.com"

    def test_malformed_inline_configuration(self, resolver):
        """Test invalid configs raise a validation error."""
        with pytest.raises(OrchestrationValidationError):
            resolver.resolve_domain({"name": "bad.example.com", "databases": {"qa": {"name": "x"}}})

    def test_batch_isolates_failures(self, resolver):
        """Test one bad name does not abort the batch."""
        results = resolver.resolve_multiple_domains(["alpha.example.com", "nope.example.com", "beta.example.com"])

        assert [r.ok for r in results] == [True, False, True]
        assert "Unknown domain" in results[1].error


class TestValidatePrerequisites:
    """Test prerequisite reports."""

    @pytest.mark.asyncio
    async def test_valid_domain(self, resolver):
        """Test a complete domain passes."""
        report = await resolver.validate_domain_prerequisites(
            resolver.resolve_domain("alpha.example.com"), "production"
        )
        assert report.valid
        assert report.issues == []

    @pytest.mark.asyncio
    async def test_bad_ids_and_missing_database(self, resolver):
        """Test format problems are reported, not raised."""
        domain = resolver.resolve_domain({
            "name": "broken.example.com",
            "account_id": "xyz",
            "zone_id": "",
            "databases": {"staging": {"name": "broken-staging"}},
        })

        report = await resolver.validate_domain_prerequisites(domain, "production")

        assert not report.valid
        assert any("account id" in issue for issue in report.issues)
        assert any("zone id" in issue.lower() for issue in report.issues)
        assert any("No production database" in issue for issue in report.issues)

    @pytest.mark.asyncio
    async def test_invalid_domain_name(self, resolver):
        """Test malformed domain names are reported."""
        domain = resolver.resolve_domain({
            "name": "not_a_domain",
            "account_id": ACCOUNT_ID,
            "zone_id": ZONE_ID,
            "databases": {"production": {"name": "x-db"}},
        })
        report = await resolver.validate_domain_prerequisites(domain, "production")
        assert any("Invalid domain format" in issue for issue in report.issues)

    @pytest.mark.asyncio
    async def test_reachability_missing_database_is_warning(self, resolver):
        """Test a missing database only warns."""
        report = await resolver.validate_domain_prerequisites(
            resolver.resolve_domain("beta.example.com"), "production", check_reachability=True
        )
        assert report.valid
        assert any("does not exist" in w for w in report.warnings)

    @pytest.mark.asyncio
    async def test_reachability_gateway_error_is_issue(self):
        """Test a gateway failure is an issue."""
        resolver = DomainResolver(CATALOG, database_gateway=FakeDatabaseGateway(fail_with=RuntimeError("auth")))

        report = await resolver.validate_domain_prerequisites(
            resolver.resolve_domain("alpha.example.com"), "production", check_reachability=True
        )
        assert not report.valid
        assert any("auth" in issue for issue in report.issues)


class TestLoadCatalog:
    """Test JSON catalog loading."""

    def test_list_shape(self, tmp_path):
        """Test a {"domains": [...]} file."""
        path = tmp_path / "domains.json"
        path.write_text(json.dumps({"domains": [domain_config("a.example.com")]}), encoding="utf-8")

        catalog = load_catalog(path)
        assert list(catalog) == ["a.example.com"]

    def test_missing_file(self, tmp_path):
        """Test an unreadable catalog is a validation error."""
        with pytest.raises(OrchestrationValidationError):
            load_catalog(tmp_path / "missing.json")
