"""
Shared fixtures: a configuration rooted in tmp_path with groups alpha/beta,
in-memory filesystem and identity store, file based rule store.
"""
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(__file__))

from fakes import MemoryFs, MemoryIdentity  # noqa: E402

from ftpjail.ftp.parser import FtpConfig  # noqa: E402
from ftpjail.ftp.metadata import VsftpdRuleStore  # noqa: E402
from ftpjail.ftp.jail import NamespaceComposer  # noqa: E402
from ftpjail.ftp.acl import AccessControlProjector  # noqa: E402
from ftpjail.manager import FtpManager  # noqa: E402


@pytest.fixture
def conf(tmp_path):
    return FtpConfig(
        ftp_root="/srv/ftp",
        home_root="/home",
        groups=("alpha", "beta"),
        vsftpd_conf=str(tmp_path / "vsftpd.conf"),
        user_config_dir=str(tmp_path / "user_conf"),
        vsftpd_log=str(tmp_path / "vsftpd.log"),
        metadata_dir=str(tmp_path / "users"),
        fstab=str(tmp_path / "fstab"),
    )


@pytest.fixture
def fs():
    return MemoryFs()


@pytest.fixture
def identity(conf):
    ident = MemoryIdentity(conf)
    for g in conf.groups:
        ident.ensure_group(g)
    return ident


@pytest.fixture
def store(conf):
    return VsftpdRuleStore(conf)


@pytest.fixture
def composer(conf, fs, identity):
    c = NamespaceComposer(conf, fs, identity)
    c.prepare_global_root()
    return c


@pytest.fixture
def projector(conf, store):
    return AccessControlProjector(conf, store)


@pytest.fixture
def manager(conf, fs, identity, store):
    mng = FtpManager(conf, identity, fs, store)
    assert mng.bootstrap().success
    return mng


@pytest.fixture
def ana(identity, composer):
    """User 'ana' with a complete tree in group alpha."""
    identity.create_user("ana", "secret")
    identity.add_to_group("ana", "alpha")
    composer.create_user_tree("ana", "alpha")
    return "ana"
