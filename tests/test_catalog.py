"""Tests for the static permission catalog and seeding."""

import pytest

from tidegate.core import catalog
from tidegate.core.seeder import seed_initial_admin, seed_permission_catalog, seed_system_roles
from tidegate.exceptions import ValidationError
from tidegate.models import Permission, Role, RolePermission


class TestCatalog:

    def test_names_are_unique(self):
        names = [p.name for p in catalog.all_permissions()]
        assert len(names) == len(set(names))

    def test_ids_are_stable(self):
        definition = catalog.lookup("pod", "read")
        assert definition is not None
        assert definition.id == catalog.get_by_name("pod:read").id
        assert catalog.get_by_id(definition.id) is definition

    def test_lookup_unknown(self):
        assert catalog.lookup("pod", "fly") is None

    def test_super_admin_holds_everything(self):
        super_admin = next(r for r in catalog.SYSTEM_ROLES if r.name == "super_admin")
        assert set(super_admin.permissions) == {p.name for p in catalog.all_permissions()}

    def test_viewer_is_only_default(self):
        defaults = [r.name for r in catalog.SYSTEM_ROLES if r.is_default]
        assert defaults == ["viewer"]

    def test_group_by_resource(self):
        grouped = catalog.group_by_resource()
        assert [p.action for p in grouped["namespace"]] == ["read", "create", "delete"]

    @pytest.mark.parametrize("name", ["pod", "pod:", ":read", "pod:read:extra", "ship:read", "pod:fly"])
    def test_parse_permission_name_rejects(self, name):
        with pytest.raises(ValidationError):
            catalog.parse_permission_name(name)

    def test_parse_permission_name(self):
        assert catalog.parse_permission_name("deployment:scale") == ("deployment", "scale")

    def test_require(self):
        assert catalog.require("node", "drain").name == "node:drain"
        with pytest.raises(ValidationError):
            catalog.require("pod", "scale")
        with pytest.raises(ValidationError):
            catalog.require("ship", "read")


class TestSeeding:

    def test_catalog_seeded(self, db):
        assert db.query(Permission).count() == len(catalog.all_permissions())
        assert db.query(Role).filter(Role.type == "system").count() == len(catalog.SYSTEM_ROLES)

    def test_seeding_is_idempotent(self, db):
        before = db.query(RolePermission).count()
        assert seed_permission_catalog(db) == 0
        assert seed_system_roles(db) == 0
        assert db.query(RolePermission).count() == before

    def test_reseed_restores_missing_system_role(self, db):
        db.query(Role).filter(Role.name == "operator").delete()
        db.commit()
        assert seed_system_roles(db) == 1
        operator = db.query(Role).filter(Role.name == "operator").one()
        expected = next(r for r in catalog.SYSTEM_ROLES if r.name == "operator").permissions
        linked = db.query(RolePermission).filter(RolePermission.role_id == operator.id).count()
        assert linked == len(set(expected))

    def test_initial_admin_bootstrap(self, db):
        from tidegate.core.principal import Principal
        from tidegate.core.scope import ScopeContext
        from tidegate.models import User
        from tidegate.services import AuthorizationResolver

        assert seed_initial_admin(db, "root", "root-password") is True
        assert seed_initial_admin(db, "root", "root-password") is False
        admin = db.query(User).filter(User.username == "root").one()
        principal = Principal(admin.id, "s")
        assert AuthorizationResolver(db).check(principal, "drain", "node", ScopeContext("prod"))

    def test_initial_admin_skipped_without_credentials(self, db):
        assert seed_initial_admin(db, "", "") is False
