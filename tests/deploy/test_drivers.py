"""Tests for the remote deployment drivers, using stand-ins for every transport."""

from __future__ import annotations

import ftplib
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from multidir.deploy import DeployError
from multidir.deploy.ftp import FTPDeployer
from multidir.deploy.gcs import GCSDeployer
from multidir.deploy.github import GitHubPagesDeployer
from multidir.deploy.s3 import S3Deployer
from multidir.deploy.ssh import SSHDeployer
from multidir.models import Directory


@pytest.fixture
def site(tmp_path: Path) -> Path:
    root = tmp_path / "dist" / "french-desserts"
    (root / "css").mkdir(parents=True)
    (root / "index.html").write_text("<h1>desserts</h1>", encoding="utf-8")
    (root / "css" / "site.css").write_text("body{}", encoding="utf-8")
    return root


def _tenant(method: str, section: Dict[str, Any], domain: Optional[str] = "fd.test") -> Directory:
    return Directory(
        id="french-desserts",
        name="French Desserts",
        domain=domain,
        deployment={method: section},
    )


class _FakeFTP:
    def __init__(self) -> None:
        self.logged_in: Optional[tuple[str, str]] = None
        self.dirs: List[str] = []
        self.stored: Dict[str, bytes] = {}
        self.closed = False

    def login(self, user: str, password: str) -> None:
        self.logged_in = (user, password)

    def mkd(self, path: str) -> None:
        if path == "/www":
            raise ftplib.error_perm("550 Directory already exists")
        self.dirs.append(path)

    def storbinary(self, command: str, handle: Any) -> None:
        self.stored[command.split(" ", 1)[1]] = handle.read()

    def quit(self) -> None:
        self.closed = True


def test_ftp_uploads_tree_and_creates_directories(site: Path) -> None:
    fake = _FakeFTP()
    connections: List[tuple[str, int, float]] = []

    def connect(host: str, port: int, timeout: float) -> _FakeFTP:
        connections.append((host, port, timeout))
        return fake

    deployer = FTPDeployer(connect=connect, env={"FTP_PASSWORD": "pw"})  # type: ignore[arg-type]
    result = deployer.deploy(
        _tenant("ftp", {"host": "ftp.test", "user": "deploy", "path": "/www"}), site
    )

    assert connections == [("ftp.test", 21, 30.0)]
    assert fake.logged_in == ("deploy", "pw")
    assert fake.dirs == ["/www/css"]
    assert sorted(fake.stored) == ["/www/css/site.css", "/www/index.html"]
    assert fake.stored["/www/index.html"] == b"<h1>desserts</h1>"
    assert fake.closed is True
    assert result.output == "ftp://ftp.test/www"


def test_ftp_connection_failure_raises_deploy_error(site: Path) -> None:
    def connect(host: str, port: int, timeout: float) -> ftplib.FTP:
        raise ConnectionRefusedError("refused")

    deployer = FTPDeployer(connect=connect, env={})

    with pytest.raises(DeployError, match="FTP connection error"):
        deployer.deploy(_tenant("ftp", {"host": "ftp.test", "user": "deploy"}), site)


def test_ssh_creates_remote_path_then_rsyncs(site: Path) -> None:
    calls: List[List[str]] = []

    def runner(args: List[str], *, cwd: Path) -> None:
        calls.append(args)

    deployer = SSHDeployer(runner=runner, env={"SSH_KEY_PATH": "/keys/id_ed25519"})
    result = deployer.deploy(
        _tenant("ssh", {"host": "web.test", "user": "www", "path": "/srv/fd", "port": 2222}),
        site,
    )

    ssh = ["ssh", "-i", "/keys/id_ed25519", "-p", "2222"]
    assert calls == [
        [*ssh, "www@web.test", "mkdir -p /srv/fd"],
        ["rsync", "-av", "--delete", "-e", " ".join(ssh), f"{site}/", "www@web.test:/srv/fd"],
    ]
    assert result.output == "www@web.test:/srv/fd"


def test_ssh_failure_names_the_command(site: Path) -> None:
    def runner(args: List[str], *, cwd: Path) -> None:
        if args[0] == "rsync":
            raise subprocess.CalledProcessError(23, args)

    deployer = SSHDeployer(runner=runner, env={})

    with pytest.raises(DeployError, match="rsync exited with status 23"):
        deployer.deploy(_tenant("ssh", {"host": "h", "user": "u", "path": "/p"}), site)


class _FakeS3:
    def __init__(self) -> None:
        self.objects: Dict[str, Dict[str, Any]] = {}

    def put_object(self, **kwargs: Any) -> None:
        self.objects[kwargs["Key"]] = kwargs


def test_s3_puts_objects_with_content_types(site: Path) -> None:
    fake = _FakeS3()
    configs: List[Dict[str, Any]] = []

    def factory(config: Dict[str, Any]) -> _FakeS3:
        configs.append(config)
        return fake

    deployer = S3Deployer(client_factory=factory, env={})
    result = deployer.deploy(
        _tenant("s3", {"bucket": "sites", "prefix": "french-desserts/", "region": "eu-west-3"}),
        site,
    )

    assert configs[0]["region"] == "eu-west-3"
    assert sorted(fake.objects) == ["french-desserts/css/site.css", "french-desserts/index.html"]
    assert fake.objects["french-desserts/index.html"]["ContentType"] == "text/html"
    assert fake.objects["french-desserts/css/site.css"]["Bucket"] == "sites"
    assert result.output == "s3://sites/french-desserts"


class _FakeBlob:
    def __init__(self, bucket: "_FakeBucket", name: str) -> None:
        self.bucket = bucket
        self.name = name

    def upload_from_filename(self, filename: str, content_type: str) -> None:
        if self.bucket.fail:
            raise RuntimeError("quota exceeded")
        self.bucket.uploads[self.name] = content_type


class _FakeBucket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.uploads: Dict[str, str] = {}

    def blob(self, name: str) -> _FakeBlob:
        return _FakeBlob(self, name)


class _FakeStorage:
    def __init__(self, bucket: _FakeBucket) -> None:
        self._bucket = bucket
        self.requested: List[str] = []

    def bucket(self, name: str) -> _FakeBucket:
        self.requested.append(name)
        return self._bucket


def test_gcs_uploads_blobs(site: Path) -> None:
    storage = _FakeStorage(_FakeBucket())
    deployer = GCSDeployer(client_factory=lambda config: storage, env={})

    result = deployer.deploy(_tenant("gcs", {"bucket": "fd-site"}), site)

    assert storage.requested == ["fd-site"]
    assert storage._bucket.uploads == {"css/site.css": "text/css", "index.html": "text/html"}
    assert result.output == "gs://fd-site/"


def test_gcs_upload_error_raises_deploy_error(site: Path) -> None:
    deployer = GCSDeployer(
        client_factory=lambda config: _FakeStorage(_FakeBucket(fail=True)), env={}
    )

    with pytest.raises(DeployError, match="GCS upload of css/site.css failed: quota exceeded"):
        deployer.deploy(_tenant("gcs", {"bucket": "fd-site"}), site)


def test_github_pages_pushes_tree_with_cname(site: Path, tmp_path: Path) -> None:
    calls: List[Dict[str, Any]] = []

    def runner(args: List[str], *, cwd: Path, env: Optional[Dict[str, str]] = None) -> str:
        cname = (cwd / "CNAME").read_text(encoding="utf-8")
        calls.append({"args": args, "env": env, "cname": cname})
        return ""

    deployer = GitHubPagesDeployer(
        runner=runner, workdir=tmp_path / "work", env={"GITHUB_TOKEN": "t0k"}
    )
    result = deployer.deploy(_tenant("github", {"repo": "acme/french-desserts"}), site)

    assert [call["args"][1] for call in calls] == ["init", "remote", "add", "commit", "push"]
    assert calls[1]["args"][-1] == "https://t0k@github.com/acme/french-desserts.git"
    assert calls[4]["args"][-1] == "HEAD:gh-pages"
    assert calls[3]["env"]["GIT_AUTHOR_NAME"] == "multidir"
    assert all(call["cname"] == "fd.test" for call in calls)
    assert list((tmp_path / "work").iterdir()) == []
    assert result.output == "https://github.com/acme/french-desserts/tree/gh-pages"


def test_github_pages_hides_token_on_failure(site: Path, tmp_path: Path) -> None:
    def runner(args: List[str], *, cwd: Path, env: Optional[Dict[str, str]] = None) -> str:
        if args[1] == "push":
            raise subprocess.CalledProcessError(128, args)
        return ""

    deployer = GitHubPagesDeployer(runner=runner, workdir=tmp_path / "work", env={})

    with pytest.raises(DeployError) as excinfo:
        deployer.deploy(
            _tenant("github", {"repo": "acme/fd", "token": "s3cret"}, domain=None), site
        )

    assert str(excinfo.value) == "git push exited with status 128"
    assert "s3cret" not in str(excinfo.value)


def test_github_pages_requires_a_token(site: Path) -> None:
    deployer = GitHubPagesDeployer(runner=lambda *a, **k: "", env={})

    with pytest.raises(DeployError, match="token"):
        deployer.deploy(_tenant("github", {"repo": "acme/fd"}), site)
