import os
import dataclasses

import pytest

from ftpjail.ftp.acl import AccessControlProjector, AuthRule, READ, READ_WRITE
from ftpjail.ftp.errors import ExternalToolFailure
from ftpjail.ftp.metadata import VsftpdRuleStore


class TestProjectUser:

    def test_rules_derived_from_user_and_group(self, projector):
        rules = projector.project_user("ana", "alpha")

        assert rules == [
            AuthRule("ana", "/home/ana/ftp", READ_WRITE),
            AuthRule("ana", "/srv/ftp/general", READ_WRITE),
            AuthRule("ana", "/srv/ftp/alpha", READ_WRITE),
        ]
        assert projector.rules_for("ana") == rules

    def test_anonymous_read_only_on_shared(self, projector, store):
        projector.project_user("ana", "alpha")

        anon = store.load("ftp")
        assert anon["anonymous"] is True
        assert anon["rules"] == [{"identity": "ftp", "path": "/srv/ftp/general", "access": READ}]

    def test_repeated_projection_does_not_duplicate(self, projector, store):
        projector.project_user("ana", "alpha")
        projector.project_user("ana", "alpha")
        projector.project_user("bob", "beta")

        assert len(projector.rules_for("ana")) == 3
        assert store.identities() == ["ana", "bob", "ftp"]
        assert projector.projected_users() == ["ana", "bob"]

    def test_group_change_leaves_no_stale_rule(self, projector):
        projector.project_user("ana", "alpha")
        projector.project_user("ana", "beta")

        paths = [r.path for r in projector.rules_for("ana")]
        assert "/srv/ftp/alpha" not in paths
        assert "/srv/ftp/beta" in paths
        assert projector.group_of("ana") == "beta"

    def test_daemon_user_file(self, conf, projector):
        projector.project_user("ana", "alpha")

        with open(os.path.join(conf.user_config_dir, "ana"), encoding="utf-8") as f:
            content = f.read()
        assert "local_root=/home/ana/ftp\n" in content
        assert "write_enable=YES\n" in content
        assert "# group: alpha" in content

    def test_daemon_anonymous_file(self, conf, projector):
        projector.project_user("ana", "alpha")

        with open(os.path.join(conf.user_config_dir, "ftp"), encoding="utf-8") as f:
            content = f.read()
        assert "anon_root=/srv/ftp/general\n" in content
        assert "anon_upload_enable=NO\n" in content

    def test_store_unavailable_is_reported(self, conf, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        broken = VsftpdRuleStore(dataclasses.replace(conf, metadata_dir=str(blocker / "users")))
        projector = AccessControlProjector(conf, broken)

        with pytest.raises(ExternalToolFailure):
            projector.project_user("ana", "alpha")


class TestDeprojectUser:

    def test_removes_all_entries(self, conf, projector, store):
        projector.project_user("ana", "alpha")
        projector.deproject_user("ana")

        assert projector.rules_for("ana") == []
        assert store.load("ana") is None
        assert not os.path.exists(os.path.join(conf.user_config_dir, "ana"))

    def test_keeps_anonymous_rule(self, projector, store):
        projector.project_user("ana", "alpha")
        projector.deproject_user("ana")
        assert store.load("ftp") is not None

    def test_unknown_user_is_noop(self, projector):
        projector.deproject_user("ghost")
        assert projector.rules_for("ghost") == []
