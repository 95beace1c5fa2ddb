import hashlib
import io
import os
import tempfile
import threading
import unittest
from contextlib import redirect_stderr
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from hfdownloader.entity import DownloadRequest, StorageTarget
from hfdownloader.huggingface import HuggingFaceEngine, select_files, split_filters, verify_files
from hfdownloader import r2
from hfdownloader.progress import LOG_INTERVAL, LoggingProgressBar


def repo_file(path, size=10, sha256=None):
    lfs = SimpleNamespace(sha256=sha256, size=size) if sha256 else None
    return SimpleNamespace(path=path, size=size, lfs=lfs)


def repo_folder(path):
    return SimpleNamespace(path=path)


TARGET = StorageTarget(account_id="acct", access_key_id="ak", access_key_secret="sk",
                       bucket_name="bucket", subfolder="hf_dataset")


class TestSelection(unittest.TestCase):
    def test_split_filters(self):
        self.assertEqual(split_filters("org/m"), ("org/m", []))
        self.assertEqual(split_filters("org/m:Q4_0, q5_k"), ("org/m", ["Q4_0", "q5_k"]))

    def test_select_by_prefix_and_filter(self):
        entries = [
            repo_folder("train"),
            repo_file("README.md"),
            repo_file("train/part-q4_0.parquet"),
            repo_file("train/part-q8.parquet"),
            repo_file("training/part-q4_0.parquet"),
        ]
        self.assertEqual([e.path for e in select_files(entries, "train", [])],
                         ["train/part-q4_0.parquet", "train/part-q8.parquet"])
        self.assertEqual([e.path for e in select_files(entries, "train/", ["Q4_0"])],
                         ["train/part-q4_0.parquet"])
        self.assertEqual(len(select_files(entries, "", [])), 4)


class TestVerifyFiles(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "model.bin")
        with open(self.path, "wb") as f:
            f.write(b"weights")
        self.digest = hashlib.sha256(b"weights").hexdigest()

    def tearDown(self):
        self.tmp.cleanup()

    def test_match(self):
        self.assertEqual(verify_files(self.tmp.name, [repo_file("model.bin", sha256=self.digest),
                                                      repo_file("config.json")]), 1)

    def test_mismatch_removes_file(self):
        with self.assertRaises(ValueError):
            verify_files(self.tmp.name, [repo_file("model.bin", sha256="0" * 64)])
        self.assertFalse(os.path.exists(self.path))


class TestHuggingFaceEngine(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.hf = MagicMock()
        self.hf.HfApi.return_value.list_repo_tree.return_value = [
            repo_file("a-q4.gguf"), repo_file("a-q5.gguf"), repo_file("README.md"),
        ]
        self.engine = HuggingFaceEngine()
        patcher = patch.object(HuggingFaceEngine, "_ensure_hf", return_value=self.hf)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.tmp.cleanup()

    def test_download_model(self):
        request = DownloadRequest(source="org/m", storage=self.tmp.name, branch="v1", skip_sha=True,
                                  token="hf_x", max_workers=4)
        self.engine.download(request)
        kwargs = self.hf.snapshot_download.call_args.kwargs
        self.assertEqual(kwargs["repo_id"], "org/m")
        self.assertEqual(kwargs["repo_type"], "model")
        self.assertEqual(kwargs["revision"], "v1")
        self.assertEqual(kwargs["local_dir"], os.path.join(self.tmp.name, "org_m"))
        self.assertEqual(kwargs["token"], "hf_x")
        self.assertEqual(kwargs["max_workers"], 4)
        self.assertEqual(sorted(kwargs["allow_patterns"]), ["README.md", "a-q4.gguf", "a-q5.gguf"])

    def test_one_folder_per_filter(self):
        request = DownloadRequest(source="org/m:q4,q5", storage=self.tmp.name, is_dataset=True,
                                  one_folder_per_filter=True, skip_sha=True)
        self.engine.download(request)
        calls = self.hf.snapshot_download.call_args_list
        self.assertEqual([c.kwargs["local_dir"] for c in calls],
                         [os.path.join(self.tmp.name, "org_m_q4"), os.path.join(self.tmp.name, "org_m_q5")])
        self.assertEqual(calls[0].kwargs["allow_patterns"], ["a-q4.gguf"])
        self.assertEqual(calls[0].kwargs["repo_type"], "dataset")

    def test_no_match_fails(self):
        with self.assertRaises(RuntimeError):
            self.engine.download(DownloadRequest(source="org/m:q8", storage=self.tmp.name))
        self.hf.snapshot_download.assert_not_called()

    def test_skip_local_uploads_from_temp_dir(self):
        request = DownloadRequest(source="org/m", storage=self.tmp.name, skip_sha=True,
                                  target=TARGET, skip_local=True, num_connections=3)
        with patch("hfdownloader.r2.upload_folder") as upload:
            self.engine.download(request)
        target, local_dir, folder, connections = upload.call_args.args
        self.assertIs(target, TARGET)
        self.assertEqual(folder, "org_m")
        self.assertEqual(connections, 3)
        self.assertFalse(local_dir.startswith(self.tmp.name))
        self.assertFalse(os.path.exists(local_dir))
        self.assertEqual(os.listdir(self.tmp.name), [])

    def test_non_tty_logs_progress_periodically(self):
        request = DownloadRequest(source="org/m", storage=self.tmp.name, skip_sha=True)
        with patch("hfdownloader.huggingface.sys.stderr") as stderr:
            stderr.isatty.return_value = False
            self.engine.download(request)
        self.assertIs(self.hf.snapshot_download.call_args.kwargs["tqdm_class"], LoggingProgressBar)
        self.hf.utils.disable_progress_bars.assert_not_called()

    def test_tty_keeps_default_bars(self):
        request = DownloadRequest(source="org/m", storage=self.tmp.name, skip_sha=True)
        with patch("hfdownloader.huggingface.sys.stderr") as stderr:
            stderr.isatty.return_value = True
            self.engine.download(request)
        self.assertIsNone(self.hf.snapshot_download.call_args.kwargs["tqdm_class"])

    def test_silent_disables_bars(self):
        request = DownloadRequest(source="org/m", storage=self.tmp.name, skip_sha=True, silent=True)
        with patch("hfdownloader.huggingface.sys.stderr") as stderr:
            stderr.isatty.return_value = False
            self.engine.download(request)
        self.hf.utils.disable_progress_bars.assert_called_once_with()
        self.assertIsNone(self.hf.snapshot_download.call_args.kwargs["tqdm_class"])


class TestLoggingProgressBar(unittest.TestCase):
    def open_bar(self, **kwargs):
        bar = LoggingProgressBar(**kwargs)
        self.addCleanup(bar.close)
        if bar.disable:
            self.skipTest("progress bars are disabled in this environment")
        return bar

    def test_describe_items(self):
        with redirect_stderr(io.StringIO()):
            bar = self.open_bar(total=4, desc="Fetching 4 files")
            bar.n = 1
            self.assertEqual(bar.describe(), "Fetching 4 files: 1/4 (25%)")

    def test_describe_bytes(self):
        with redirect_stderr(io.StringIO()):
            bar = self.open_bar(total=4 * 1024 * 1024, unit="B", unit_scale=True, desc="model.bin")
            bar.n = 1024 * 1024
            self.assertEqual(bar.describe(), "model.bin: 1.0 / 4.0 MB (25%)")

    def test_display_writes_one_line(self):
        buf = io.StringIO()
        with redirect_stderr(buf):
            bar = self.open_bar(total=2, desc="Fetching 2 files")
            bar.n = 2
            self.assertTrue(bar.display())
        self.assertEqual(buf.getvalue().splitlines()[-1], "[Downloader] Fetching 2 files: 2/2 (100%)")

    def test_default_interval(self):
        with redirect_stderr(io.StringIO()):
            bar = self.open_bar(total=1)
            self.assertEqual(bar.mininterval, LOG_INTERVAL)


class TestR2(unittest.TestCase):
    def test_upload_folder(self):
        with tempfile.TemporaryDirectory() as d:
            os.makedirs(os.path.join(d, "sub"))
            for name in ("a.txt", os.path.join("sub", "b.bin")):
                with open(os.path.join(d, name), "wb") as f:
                    f.write(b"x")
            client = MagicMock()
            keys = r2.upload_folder(TARGET, d, "org_m", connections=2, client=client)
        self.assertEqual(sorted(keys), ["hf_dataset/org_m/a.txt", "hf_dataset/org_m/sub/b.bin"])
        self.assertEqual(client.upload_file.call_count, 2)

    def fake_client(self, objects, bodies):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [{"Contents": objects}]

        def get_object(Bucket, Key, Range):
            data = bodies[Key]
            chunk = data[-4:] if Range == "bytes=-4" else data[:4]
            return {"Body": io.BytesIO(chunk)}

        client.get_object.side_effect = get_object
        return client

    def test_cleanup_deletes_corrupted_parquet(self):
        good = b"PAR1" + b"\0" * 12 + b"PAR1"
        objects = [
            {"Key": "data/a.parquet", "Size": len(good)},
            {"Key": "data/b.parquet", "Size": 4},
            {"Key": "data/c.txt", "Size": 1},
            {"Key": "data/d.parquet", "Size": 20},
        ]
        bodies = {"data/a.parquet": good, "data/b.parquet": b"PAR1", "data/d.parquet": b"PAR1" + b"\0" * 16}
        client = self.fake_client(objects, bodies)
        removed = r2.cleanup_corrupted_files(threading.Event(), TARGET, "data/", 2, client=client)
        self.assertEqual(removed, ["data/b.parquet", "data/d.parquet"])
        deleted = sorted(c.kwargs["Key"] for c in client.delete_object.call_args_list)
        self.assertEqual(deleted, removed)
        client.get_paginator.return_value.paginate.assert_called_once_with(Bucket="bucket", Prefix="data/")

    def test_cleanup_cancelled(self):
        client = self.fake_client([{"Key": "data/b.parquet", "Size": 4}], {})
        cancel = threading.Event()
        cancel.set()
        self.assertEqual(r2.cleanup_corrupted_files(cancel, TARGET, "data/", 2, client=client), [])
        client.delete_object.assert_not_called()

    def test_engine_cleanup_delegates(self):
        cancel = threading.Event()
        with patch("hfdownloader.r2.cleanup_corrupted_files", return_value=["k"]) as cleanup:
            self.assertEqual(HuggingFaceEngine().cleanup_corrupted(cancel, TARGET, "data/", 4), ["k"])
        cleanup.assert_called_once_with(cancel, TARGET, "data/", 4)


if __name__ == "__main__":
    unittest.main()
