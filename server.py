#!/usr/bin/env python3
"""
Management script for the FareMarket store server.
"""

import json
import os
import signal
import subprocess
import sys
import time

import click

from faremarket.config import settings
from faremarket.server.json_store import empty_db, ensure_db_file

PID_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'server.pid')


def read_pid():
    """Return the PID recorded in the PID file, or None."""
    if not os.path.exists(PID_FILE):
        return None
    with open(PID_FILE, 'r') as f:
        pid = f.read().strip()
    try:
        return int(pid)
    except ValueError:
        click.echo(f"Invalid PID in the file: {pid}")
        os.remove(PID_FILE)
        return None


def is_running(pid):
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


@click.group()
def cli():
    """FareMarket store server management CLI."""
    pass


@cli.command()
@click.option('--port', default=3000, help='Port to run the server on')
@click.option('--db-file', default=settings.DB_FILE, help='Database file')
def start(port, db_file):
    """Start the store server in the background."""
    pid = read_pid()
    if pid is not None:
        click.echo(f"Server already running with PID {pid}")
        click.echo("If the server is not running, delete the 'server.pid' file and try again")
        return

    ensure_db_file(db_file)
    click.echo(f"Starting store server on port {port}...")
    click.echo(f"Using database: {db_file}")

    process = subprocess.Popen(
        [sys.executable, '-m', 'faremarket.server.json_store', '--port', str(port), '--db-file', db_file],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    with open(PID_FILE, 'w') as f:
        f.write(str(process.pid))

    # Give the server a moment to start
    time.sleep(1)

    if process.poll() is not None:
        click.echo("Server failed to start!", err=True)
        stdout, stderr = process.communicate()
        click.echo(f"STDOUT: {stdout.decode('utf-8')}")
        click.echo(f"STDERR: {stderr.decode('utf-8')}")
        os.remove(PID_FILE)
        sys.exit(1)

    click.echo(f"Server running with PID {process.pid}")
    click.echo(f"Server accessible at: http://localhost:{port}")


@cli.command()
def stop():
    """Stop the store server."""
    pid = read_pid()
    if pid is None:
        click.echo("No running server found")
        return

    click.echo(f"Stopping server with PID {pid}...")
    if is_running(pid):
        os.kill(pid, signal.SIGTERM)
        time.sleep(1)
        if is_running(pid):
            click.echo("Server did not terminate gracefully, force killing...")
            os.kill(pid, signal.SIGKILL)
    click.echo("Server stopped")
    os.remove(PID_FILE)


@cli.command()
def status():
    """Check if the store server is running."""
    pid = read_pid()
    if pid is None:
        click.echo("Server is not running")
    elif is_running(pid):
        click.echo(f"Server is running with PID {pid}")
    else:
        click.echo("Server PID file exists but process is not running")
        click.echo("You may want to remove the 'server.pid' file")


@cli.command()
@click.option('--db-file', default=settings.DB_FILE, help='Database file')
def reset(db_file):
    """Reset the database to empty collections, keeping a backup."""
    if not os.path.exists(db_file):
        click.echo(f"Database file not found: {db_file}")
        return

    backup_path = f"{db_file}.bak"
    with open(db_file, 'r') as src, open(backup_path, 'w') as dst:
        dst.write(src.read())
    with open(db_file, 'w') as f:
        json.dump(empty_db(), f, indent=2)
    click.echo(f"Database reset. Backup created at {backup_path}")


if __name__ == '__main__':
    cli()
