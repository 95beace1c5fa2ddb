"""CLI entrypoint for hfdownloader.

Only this module decides the exit status: components raise
HFDownloaderError subclasses and main() turns them into a logged error and a
non-zero return code.
"""
import argparse
import logging
import os
import sys
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from . import VERSION
from .base import Engine
from .config import generate_config_file, resolve_config
from .dispatcher import get_engine
from .entity import Config
from .errors import HFDownloaderError, InstallError, UsageError
from .install import DEFAULT_INSTALL_PATH, install_binary, resolve_executable
from .orchestrator import run_cleanup, run_download
from .storage import build_storage_target
from .utils import mask_secret

logger = logging.getLogger("hfdownloader")

GENERATE_CONFIG = "generate-config"


def _description() -> str:
    text = f"a Simple HuggingFace Models Downloader Utility\nVersion: {VERSION}"
    try:
        return f"{text}\nRunning on: {resolve_executable()}"
    except (OSError, InstallError) as e:
        logger.debug("Failed to get executable path, %s", e)
        return text


def _build_parser():
    p = argparse.ArgumentParser(
        prog="hfdownloader",
        description=_description(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"commands:\n  {GENERATE_CONFIG}  Generates an example configuration file with default values",
    )
    # Options map onto Config fields and stay unset unless given, so the
    # config file keeps its values for everything not on the command line.
    s = argparse.SUPPRESS
    toggle = argparse.BooleanOptionalAction
    p.add_argument("target", nargs="*", metavar="model", help="model name, only used with -j")
    p.add_argument("-m", "--model", dest="model_name", default=s, help="Model name to download")
    p.add_argument("-d", "--dataset", dest="dataset_name", default=s, help="Dataset name to download")
    p.add_argument("-b", "--branch", dest="branch", default=s, help="Branch of the model or dataset")
    p.add_argument("-s", "--storage", dest="storage", default=s, help="Storage path for downloads")
    p.add_argument("-c", "--concurrent", dest="max_workers", type=int, default=s,
                   help="Number of concurrent download workers")
    p.add_argument("--connections", dest="num_connections", type=int, default=s,
                   help="Number of concurrent connections for uploads and cleanup")
    p.add_argument("-t", "--token", dest="auth_token", default=s, help="HuggingFace Auth Token")
    p.add_argument("-f", "--appendFilterFolder", dest="one_folder_per_filter", action=toggle, default=s,
                   help="Append filter name to folder")
    p.add_argument("-k", "--skipSHA", dest="skip_sha", action=toggle, default=s, help="Skip SHA256 hash check")
    p.add_argument("--maxRetries", dest="max_retries", type=int, default=s,
                   help="Maximum number of retries for downloads")
    p.add_argument("--retryInterval", dest="retry_interval", type=int, default=s,
                   help="Interval between retries in seconds")
    p.add_argument("-j", "--justDownload", dest="just_download", action=toggle, default=s,
                   help="Just download the model to the current directory and assume the first argument is the model name")
    p.add_argument("-q", "--silentMode", dest="silent_mode", action=toggle, default=s,
                   help="Disable progress bar output printing")
    p.add_argument("-i", "--install", action="store_true",
                   help="Install the binary to the OS default bin folder, Unix-like operating systems only")
    p.add_argument("-p", "--installPath", dest="install_path", default=DEFAULT_INSTALL_PATH,
                   help="install Path (optional)")

    r2 = p.add_argument_group("remote storage")
    r2.add_argument("--r2", dest="use_r2", action=toggle, default=s, help="Upload to Cloudflare R2")
    r2.add_argument("--r2-bucket", dest="r2_bucket_name", default=s, help="R2 bucket name")
    r2.add_argument("--r2-account", dest="r2_account_id", default=s, help="reserved, use R2_ACCOUNT_ID")
    r2.add_argument("--r2-access-key", dest="r2_access_key", default=s, help="reserved, use R2_WRITE_ACCESS_KEY_ID")
    r2.add_argument("--r2-secret-key", dest="r2_secret_key", default=s,
                    help="reserved, use R2_WRITE_SECRET_ACCESS_KEY")
    r2.add_argument("--skip-local", dest="skip_local", action=toggle, default=s,
                    help="Skip local storage when using R2")
    r2.add_argument("--cleanup-corrupted", dest="cleanup_corrupted", action="store_true",
                    help="Clean up corrupted parquet files")
    r2.add_argument("--r2-subfolder", dest="r2_subfolder", default=s,
                    help="Subfolder on your R2 bucket (e.g. hf_dataset)")
    r2.add_argument("--hf-prefix", dest="hf_prefix", default=s,
                    help="Optional prefix to only fetch files from a specific folder in the HF datasets repo")
    return p


def _build_generate_parser():
    return argparse.ArgumentParser(
        prog=f"hfdownloader {GENERATE_CONFIG}",
        description="Generates an example configuration file with default values",
    )


def _config_flags(args: argparse.Namespace) -> Dict[str, object]:
    names = set(Config.field_names())
    return {k: v for k, v in vars(args).items() if k in names}


def _print_summary(config: Config) -> None:
    kind = "Dataset" if config.is_dataset else "Model"
    print(f"{kind}: {config.target}")
    print(f"Branch: {config.branch}\nStorage: {config.storage}\n"
          f"NumberOfConcurrentConnections: {config.num_connections}\n"
          f"Append Filter Names to Folder: {str(config.one_folder_per_filter).lower()}\n"
          f"Skip SHA256 Check: {str(config.skip_sha).lower()}\n"
          f"Token: {mask_secret(config.auth_token)}")


def main(argv: Optional[List[str]] = None, *, engine: Optional[Engine] = None,
         environ: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    if argv[:1] == [GENERATE_CONFIG]:
        _build_generate_parser().parse_args(argv[1:])
        try:
            path = generate_config_file(config_path)
        except OSError as e:
            logger.error("Error: failed to write config file: %s", e)
            return 1
        print(f"Generated config file at: {path}")
        return 0

    if environ is None:
        load_dotenv(os.path.join(os.getcwd(), ".env"))
        environ = dict(os.environ)

    parser = _build_parser()
    args = parser.parse_args(argv)
    flags = _config_flags(args)

    try:
        if args.install:
            resolve_config(flags, args.target, environ=environ, path=config_path, require_target=False)
            install_binary(args.install_path)
            return 0

        try:
            config = resolve_config(flags, args.target, environ=environ, path=config_path)
        except UsageError:
            parser.print_help()
            raise

        _print_summary(config)
        target = build_storage_target(config, environ)
        engine = engine or get_engine()
        if args.cleanup_corrupted:
            run_cleanup(engine, config, target)
        else:
            run_download(engine, config, target)
    except HFDownloaderError as e:
        logger.error("Error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
