import pytest

from ftpjail import helper
from ftpjail.ftp.mounts import FstabRegistry, HostFs
from ftpjail.ftp.errors import ExternalToolFailure

BASE = "UUID=1234 / ext4 defaults 0 1\n"


@pytest.fixture
def fstab(tmp_path):
    path = tmp_path / "fstab"
    path.write_text(BASE)
    return path


class TestFstabRegistry:

    def test_add_appends_bind_line(self, fstab):
        reg = FstabRegistry(str(fstab))

        assert reg.add("/srv/ftp/general", "/home/ana/ftp/general") is True

        assert fstab.read_text() == BASE + "/srv/ftp/general /home/ana/ftp/general none bind 0 0\n"
        assert reg.has("/srv/ftp/general", "/home/ana/ftp/general")
        assert reg.source_of("/home/ana/ftp/general") == "/srv/ftp/general"

    def test_add_twice_keeps_one_line(self, fstab):
        reg = FstabRegistry(str(fstab))
        reg.add("/srv/ftp/alpha", "/home/ana/ftp/alpha")
        before = fstab.read_text()

        assert reg.add("/srv/ftp/alpha", "/home/ana/ftp/alpha") is False
        assert fstab.read_text() == before

    def test_add_replaces_stale_source(self, fstab):
        reg = FstabRegistry(str(fstab))
        reg.add("/srv/ftp/beta", "/home/ana/ftp/alpha")

        reg.add("/srv/ftp/alpha", "/home/ana/ftp/alpha")

        assert reg.entries_under("/home/ana/ftp") == [("/srv/ftp/alpha", "/home/ana/ftp/alpha")]

    def test_add_drops_duplicates(self, fstab):
        line = FstabRegistry.entry("/srv/ftp/alpha", "/home/ana/ftp/alpha") + "\n"
        fstab.write_text(BASE + line + line)
        reg = FstabRegistry(str(fstab))

        assert reg.add("/srv/ftp/alpha", "/home/ana/ftp/alpha") is False
        assert fstab.read_text() == BASE + line

    def test_remove(self, fstab):
        reg = FstabRegistry(str(fstab))
        reg.add("/srv/ftp/general", "/home/ana/ftp/general")
        reg.add("/srv/ftp/general", "/home/bob/ftp/general")

        assert reg.remove("/home/ana/ftp/general") is True
        assert reg.remove("/home/ana/ftp/general") is False
        assert reg.entries_under("/home/ana/ftp") == []
        assert reg.entries_under("/home/bob/ftp") == [("/srv/ftp/general", "/home/bob/ftp/general")]
        assert fstab.read_text().startswith(BASE)

    def test_ignores_comments_and_other_mounts(self, fstab):
        fstab.write_text(BASE + "# /srv/ftp/general /home/ana/ftp/general none bind 0 0\n")
        reg = FstabRegistry(str(fstab))
        assert reg.source_of("/home/ana/ftp/general") is None
        assert reg.source_of("/") is None

    def test_missing_file(self, tmp_path):
        reg = FstabRegistry(str(tmp_path / "none"))
        assert reg.entries_under("/home") == []
        assert reg.remove("/home/ana/ftp/general") is False


class TestHostFs:

    def test_make_dir(self, tmp_path, fstab):
        fs = HostFs(str(fstab))
        path = str(tmp_path / "a" / "b")

        assert fs.make_dir(path) is True
        assert fs.make_dir(path) is False
        assert fs.is_dir(path)
        assert fs.list_dir(str(tmp_path / "a")) == ["b"]

    def test_unmounted_dir_is_not_a_matching_link(self, tmp_path, fstab):
        fs = HostFs(str(fstab))
        target = tmp_path / "target"
        target.mkdir()
        path = tmp_path / "link"
        path.mkdir()
        FstabRegistry(str(fstab)).add(str(target), str(path))

        assert fs.is_link(str(path))
        assert not fs.link_matches(str(path), str(target))

    def test_remove_link_on_plain_mount_point(self, tmp_path, fstab):
        fs = HostFs(str(fstab))
        path = tmp_path / "link"
        path.mkdir()
        FstabRegistry(str(fstab)).add("/srv/ftp/alpha", str(path))

        assert fs.remove_link(str(path)) is True

        assert not path.exists()
        assert fs.active_links(str(tmp_path)) == []
        assert fs.remove_link(str(path)) is False

    def test_remove_link_never_recurses(self, tmp_path, fstab):
        fs = HostFs(str(fstab))
        path = tmp_path / "link"
        path.mkdir()
        (path / "data.txt").write_text("keep")

        with pytest.raises(ExternalToolFailure):
            fs.remove_link(str(path))
        assert (path / "data.txt").read_text() == "keep"

    def test_remove_tree(self, tmp_path, fstab):
        fs = HostFs(str(fstab))
        root = tmp_path / "ftp"
        (root / "ana").mkdir(parents=True)
        (root / "ana" / "file").write_text("x")

        fs.remove_tree(str(root))
        fs.remove_tree(str(root))

        assert not root.exists()

    def test_create_link_missing_target(self, tmp_path, fstab):
        fs = HostFs(str(fstab))
        with pytest.raises(ExternalToolFailure):
            fs.create_link(str(tmp_path / "missing"), str(tmp_path / "link"))

    def test_revoke_on_missing_path_is_noop(self, tmp_path, fstab, monkeypatch):
        calls = []
        monkeypatch.setattr(helper, "run", lambda cmd, **kw: calls.append(cmd))
        HostFs(str(fstab)).revoke_user_rights(str(tmp_path / "missing"), "ana")
        assert calls == []

    def test_set_rights_applies_access_and_default_acl(self, tmp_path, fstab, monkeypatch):
        calls = []
        monkeypatch.setattr(helper, "run", lambda cmd, **kw: calls.append(cmd))
        monkeypatch.setattr("os.chown", lambda *a: None)
        fs = HostFs(str(fstab))

        fs.set_owner_and_rights(str(tmp_path), "root", "root", 0o775,
                                acl=[("group", "root", "rwx"), ("user", "root", "rwx")])

        assert calls == [
            ["setfacl", "-m", "g:root:rwx,u:root:rwx", str(tmp_path)],
            ["setfacl", "-d", "-m", "g:root:rwx,u:root:rwx", str(tmp_path)],
        ]

    def test_revoke_for_user_that_no_longer_resolves(self, tmp_path, fstab, monkeypatch):
        calls = []
        monkeypatch.setattr(helper, "run", lambda cmd, **kw: calls.append(cmd))

        HostFs(str(fstab)).revoke_user_rights(str(tmp_path), "ftpmng-deleted-user")

        assert calls == []

    def test_revoke_access_and_default_acl(self, tmp_path, fstab, monkeypatch):
        calls = []
        monkeypatch.setattr(helper, "run", lambda cmd, **kw: calls.append(cmd))

        HostFs(str(fstab)).revoke_user_rights(str(tmp_path), "root")

        assert calls == [
            ["setfacl", "-x", "u:root", str(tmp_path)],
            ["setfacl", "-d", "-x", "u:root", str(tmp_path)],
        ]
