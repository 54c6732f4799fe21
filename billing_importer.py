#!/usr/bin/env python3
"""
AWS Billing Importer - Main CLI Entry Point

Import AWS detailed billing reports stored in S3 into DynamoDB.
"""

import logging
import os
import sys
import threading
from datetime import datetime, timezone
from typing import Optional

import click
from colorama import Fore, Style
from colorama import init as colorama_init
from dotenv import load_dotenv
from tqdm import tqdm

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from aws_session import DEFAULT_REGION, AwsConfig
from billing_errors import BillingImportError
from billing_manager import (
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_UNZIP_DIR,
    BillingManager,
    ImportSettings,
    ImportState,
    validate_date,
)
from record_parser import DEFAULT_RECORD_KEY

# Initialize colorama
colorama_init()

STAGE_LABELS = {
    ImportState.CHECKING: '[1/5] Checking report fingerprint...',
    ImportState.FETCHING: '[2/5] Downloading report from S3...',
    ImportState.UNZIPPING: '[3/5] Unzipping report...',
    ImportState.LOADING: '[4/5] Loading line items into DynamoDB...',
    ImportState.COMMITTING: '[5/5] Recording report entry...',
}


# Configure logging
def setup_logging(debug: bool = False):
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # botocore is very chatty at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def print_banner():
    """Print application banner."""
    banner = f"""
{Fore.CYAN}╔══════════════════════════════════════════════════════════════╗
║                                                              ║
║               AWS Detailed Billing Importer                  ║
║                                                              ║
║        Load detailed billing reports from S3 to DynamoDB     ║
║                                                              ║
╚══════════════════════════════════════════════════════════════╝{Style.RESET_ALL}
    """
    print(banner)


def load_aws_config(prefix: str, fallback: Optional[AwsConfig] = None) -> AwsConfig:
    """Read <PREFIX>_ACCESS_KEY, <PREFIX>_SECRET_KEY and <PREFIX>_REGION from the environment."""
    fallback = fallback or AwsConfig(
        region=os.getenv('AWS_REGION', DEFAULT_REGION),
        profile=os.getenv('AWS_PROFILE'),
    )
    return AwsConfig(
        access_key=os.getenv(f'{prefix}_ACCESS_KEY') or fallback.access_key,
        secret_key=os.getenv(f'{prefix}_SECRET_KEY') or fallback.secret_key,
        region=os.getenv(f'{prefix}_REGION') or fallback.region,
        profile=fallback.profile,
    )


def current_month() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m')


@click.command()
@click.option('--date', '-d', type=str, help='Billing month (YYYY-MM). Default: current month')
@click.option('--bucket', '-b', type=str, help='S3 bucket holding the billing reports. Default: $BILLING_BUCKET')
@click.option('--download-dir', type=str, help=f'Scratch directory for downloads. Default: {DEFAULT_DOWNLOAD_DIR}')
@click.option('--unzip-dir', type=str, help=f'Scratch directory for extracted CSV. Default: {DEFAULT_UNZIP_DIR}')
@click.option('--workers', '-w', type=int, help='Concurrent DynamoDB writers. Default: 2')
@click.option('--record-key', type=str, help=f'CSV column used as billing-records key. Default: {DEFAULT_RECORD_KEY}')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def import_billing(date, bucket, download_dir, unzip_dir, workers, record_key, debug):
    """
    Import an AWS detailed billing report into DynamoDB.

    The report is skipped when its S3 ETag matches the one recorded by the last
    successful import; otherwise it is downloaded, unzipped and written into the
    billing-records table, and the new ETag is stored in billing-reports.

    Configuration is done via environment variables (see .env.example) and options.
    """
    # Setup
    setup_logging(debug)
    print_banner()

    # Load environment variables
    load_dotenv()

    bucket = bucket or os.getenv('BILLING_BUCKET')
    if not bucket:
        print(f"{Fore.RED}Error: No bucket given. Use --bucket or set BILLING_BUCKET{Style.RESET_ALL}")
        sys.exit(1)

    date = date or os.getenv('BILLING_DATE') or current_month()
    try:
        validate_date(date)
    except BillingImportError:
        print(f"{Fore.RED}Error: Invalid date format. Use YYYY-MM{Style.RESET_ALL}")
        sys.exit(1)

    # Safely parse WORKER_COUNT from environment with validation
    try:
        workers = workers if workers is not None else int(os.getenv('WORKER_COUNT', '2'))
    except ValueError:
        print(f"{Fore.RED}Error: WORKER_COUNT environment variable must be an integer{Style.RESET_ALL}")
        sys.exit(1)

    if workers <= 0:
        print(f"{Fore.RED}Error: --workers must be a positive integer, got {workers}{Style.RESET_ALL}")
        sys.exit(1)

    settings = ImportSettings(
        download_dir=download_dir or os.getenv('DOWNLOAD_DIR', DEFAULT_DOWNLOAD_DIR),
        unzip_dir=unzip_dir or os.getenv('UNZIP_DIR', DEFAULT_UNZIP_DIR),
        workers=workers,
        record_key=record_key or os.getenv('RECORD_KEY', DEFAULT_RECORD_KEY),
    )
    s3_config = load_aws_config('S3')
    dynamo_config = load_aws_config('DYNAMO', fallback=s3_config)

    print(f"{Fore.CYAN}Configuration:{Style.RESET_ALL}")
    print(f"  S3 Bucket: {bucket}")
    print(f"  Billing Month: {date}")
    print(f"  S3 Region: {s3_config.region}")
    print(f"  DynamoDB Region: {dynamo_config.region}")
    print(f"  Download Directory: {settings.download_dir}")
    print(f"  Unzip Directory: {settings.unzip_dir}")
    print(f"  Workers: {settings.workers}")
    print(f"  Record Key: {settings.record_key}")
    print()

    bars = {}
    bars_lock = threading.Lock()
    last_stage = [ImportState.IDLE]

    def on_stage(state):
        for bar in bars.values():
            bar.close()
        bars.clear()
        if state in STAGE_LABELS:
            last_stage[0] = state
            print(f"{Fore.GREEN}{STAGE_LABELS[state]}{Style.RESET_ALL}")

    def on_progress(state, amount):
        # Loader workers report from their own threads
        with bars_lock:
            if state not in bars:
                if state is ImportState.FETCHING:
                    bars[state] = tqdm(desc="Downloading", unit='B', unit_scale=True)
                else:
                    bars[state] = tqdm(desc="Writing line items", unit=' items')
            bars[state].update(amount)

    try:
        manager = BillingManager.from_config(s3_config, dynamo_config, settings)
        result = manager.import_report(date, bucket, on_stage=on_stage, on_progress=on_progress)

        print(f"\n{Fore.CYAN}{'='*60}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}Import Summary:{Style.RESET_ALL}")
        print(f"{Fore.CYAN}{'='*60}{Style.RESET_ALL}")
        print(f"Report: {result.report_name}")
        print(f"Fingerprint: {result.fingerprint}")
        if result.imported:
            print(f"Line Items Written: {Fore.YELLOW}{result.records_written:,}{Style.RESET_ALL}")
            print(f"\n{Fore.GREEN}✓ Import complete!{Style.RESET_ALL}")
        else:
            print(f"\n{Fore.GREEN}✓ Report already up to date, nothing to import{Style.RESET_ALL}")

    except Exception as e:
        logger.exception("Error importing billing report")
        stage = last_stage[0].value
        print(f"\n{Fore.RED}Error while {stage}: {str(e)}{Style.RESET_ALL}")
        if debug:
            raise
        sys.exit(1)


if __name__ == '__main__':
    import_billing()
