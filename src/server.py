# src/server.py
# Servo Dispatcher - action server
# Main server - port 8080
#
#   GET /servo/{id}   read every register of one servo
#   GET /{action}     perform a named action (Ping, Refresh, ShutdownAll, ...)

import sys
import asyncio
import logging
import argparse
from pathlib import Path

from aiohttp import web

# Add src to path for package imports
SRC_ROOT = Path(__file__).parent
sys.path.insert(0, str(SRC_ROOT))

from lib.config_loader import SCHEDULE_FILE, get_config_path, set_config_dir
from lib.data_logger import create_file_logger, get_register_logger
from dispatcher.actions import DEFAULT_TIMEOUT, HttpActionDispatcher
from dispatcher.exceptions import DeviceNotFound, ServoCommunicationError
from dispatcher.port_pool import PortPool
from dispatcher.requests import RequestContext, create_default_registry
from dispatcher.scheduler import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080


# =============================================================================
# API Handlers
# =============================================================================

async def handle_action(request):
    """GET /{action} - Perform a named action"""
    name = request.match_info["action"]
    handler = request.app["registry"].get(name)

    if handler is None:
        return web.json_response(
            {"error": f"Unknown action: {name}", "actions": request.app["registry"].names()},
            status=404
        )

    try:
        result = await asyncio.to_thread(handler, request.app["context"])
    except DeviceNotFound as e:
        return web.json_response({"error": str(e), "servo": e.servo_id}, status=404)
    except Exception as e:
        logger.exception(f"Action {name} failed")
        return web.json_response({"error": f"{type(e).__name__}: {e}"}, status=500)

    return web.json_response(result if result is not None else {})


async def handle_servo(request):
    """GET /servo/{servo_id} - Read all registers of one servo"""
    try:
        servo_id = int(request.match_info["servo_id"])
    except ValueError:
        return web.json_response({"error": "Servo ID must be an integer"}, status=400)

    pool = request.app["pool"]

    def read_servo():
        servo = pool.find_servo(servo_id)
        servo.read_all()
        return servo

    try:
        servo = await asyncio.to_thread(read_servo)
    except DeviceNotFound as e:
        return web.json_response({"error": str(e), "servo": servo_id}, status=404)
    except ServoCommunicationError as e:
        return web.json_response({"error": str(e), "servo": servo_id}, status=502)

    return web.json_response({
        "servo": servo.id,
        "port": servo.port_name,
        "registers": servo.register_values(),
    })


# =============================================================================
# Startup / Cleanup
# =============================================================================

async def on_startup(app):
    pool = app["pool"]
    await asyncio.to_thread(pool.refresh)
    logger.info(f"Port pool ready: {pool.count} ports, {len(pool.snapshot())} servos")


async def on_cleanup(app):
    scheduler = app["scheduler"]
    if scheduler is not None:
        await asyncio.to_thread(scheduler.stop)

    pool = app["pool"]
    await asyncio.to_thread(pool.shutdown_all)
    await asyncio.to_thread(pool.close_all)
    logger.info("Port pool closed")


def create_app(pool=None, scheduler=None, registry=None, data_logger=None):
    """
    Create and configure the aiohttp application.

    Args:
        pool: PortPool (a default pool over the system serial ports if None)
        scheduler: Scheduler or None to run without scheduled actions
        registry: RequestRegistry (system handlers if None)
        data_logger: Logger for register rows (logs/registers.log if None)
    """
    app = web.Application()

    app["pool"] = pool if pool is not None else PortPool()
    app["scheduler"] = scheduler
    app["registry"] = registry if registry is not None else create_default_registry()
    app["context"] = RequestContext(
        pool=app["pool"],
        scheduler=scheduler,
        data_logger=data_logger,
    )

    app.router.add_get('/servo/{servo_id}', handle_servo)
    app.router.add_get('/{action:.+}', handle_action)

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    return app


async def serve(app, host, port, access_log):
    """
    Run the app until cancelled. The scheduler starts only once the site is
    listening, so on_start actions can reach the server over HTTP.
    """
    runner = web.AppRunner(app, access_log=access_log)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Servo Dispatcher listening on {host}:{port}")

    scheduler = app["scheduler"]
    if scheduler is not None:
        scheduler.start()

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Servo Dispatcher Server')
    parser.add_argument('--port', '-p', type=int, default=DEFAULT_PORT,
                        help=f'Port number (default: {DEFAULT_PORT})')
    parser.add_argument('--config-dir', type=str, default=None,
                        help='Directory holding initialise_registers.yaml and schedule.yaml (default: src/config/)')
    parser.add_argument('--schedule', type=str, default=None,
                        help=f'Schedule document (default: {SCHEDULE_FILE} in the config directory)')
    parser.add_argument('--action-timeout', type=float, default=DEFAULT_TIMEOUT,
                        help=f'Seconds before a scheduled action times out (default: {DEFAULT_TIMEOUT})')
    parser.add_argument('--no-scheduler', action='store_true', help='Do not run scheduled actions')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.config_dir:
        set_config_dir(args.config_dir)

    # Configure logging
    logging.basicConfig(level=logging.INFO)

    # File logging: server events and the HTTP access log
    server_file_logger = create_file_logger("server_file", "server.log")
    logging.getLogger().addHandler(server_file_logger.handlers[0])
    access_logger = create_file_logger("aiohttp.access", "access.log")

    scheduler = None
    if not args.no_scheduler:
        dispatcher = HttpActionDispatcher(
            base_url=f"http://localhost:{args.port}",
            timeout=args.action_timeout,
        )
        scheduler = Scheduler(dispatcher, config_path=args.schedule or get_config_path(SCHEDULE_FILE))

    app = create_app(scheduler=scheduler, data_logger=get_register_logger())
    logger.info(f"Starting Servo Dispatcher on port {args.port}")
    try:
        asyncio.run(serve(app, '0.0.0.0', args.port, access_logger))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == '__main__':
    main()
