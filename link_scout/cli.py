# === FILE: link_scout/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска LinkScout через командную строку.

Команды:
  scan URL  Проверить сайт на битые ссылки и ресурсы
  config    Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --limit INT         Бюджет находок (override max_links)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stderr, если не указан)
  --log-format FORMAT Формат логирования

Команда scan опции:
  --json PATH         Сохранить JSON-отчёт со сводкой в файл
  --pretty            Преформатировать JSON-вывод (отступ 2)
  --no-browser        Запретить рендеринг в браузере (ошибка browser-required вместо него)
  --whitelist-ip      Сайт пропускает наш IP: удвоенный бюджет
  --user/--password   Учётные данные сайта (HTTP Basic)
  --api-key KEY       Ключ, передаваемый в заголовке X-API-Key
  --scan-timeout SEC  Таймаут всего сканирования (секунд)

Дополнительно:
  --version, -v       Показать версию LinkScout

Пример:
  link-scout scan https://example.com --json report.json --limit 50
"""
import asyncio
import json
import sys
from pathlib import Path

import click

from link_scout import __version__
from link_scout.aggregator import aggregate_results
from link_scout.config import (
    CooperationOptions,
    ScanOptions,
    ScannerConfig,
    SiteCredentials,
    _DEFAULT_CFG,
    load_config,
)
from link_scout.errors import ScanError
from link_scout.logger import init_logging, logger
from link_scout.report.json_report import render_json
from link_scout.scanner import start_scan

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='LinkScout, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--limit', '-l', 'limit',
    type=click.IntRange(min=1),
    default=None,
    help='Бюджет находок (override max_links)'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, limit, log_level, log_file, log_format):
    """Группа команд LinkScout CLI."""
    try:
        if config_path is None and not _DEFAULT_CFG.exists():
            cfg = ScannerConfig.from_env()
        else:
            cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    if limit is not None:
        cfg = cfg.model_copy(update={'max_links': limit, 'privileged_max_links': limit * 2})
    init_logging(
        level='DEBUG' if cfg.debug else log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('scan', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Сохранить JSON-отчёт в файл'
)
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.option('--no-browser', 'no_browser', is_flag=True, help='Запретить рендеринг в браузере')
@click.option('--whitelist-ip', 'whitelist_ip', is_flag=True, help='IP сканера в allowlist сайта')
@click.option('--user', 'user', default=None, help='Логин сайта (HTTP Basic)')
@click.option('--password', 'password', default=None, help='Пароль сайта (HTTP Basic)')
@click.option('--api-key', 'api_key', default=None, help='Значение заголовка X-API-Key')
@click.option(
    '--scan-timeout', 'scan_timeout',
    type=float,
    default=None,
    help='Таймаут всего сканирования (секунд)'
)
@click.pass_context
def scan(ctx, url, json_output, pretty, no_browser, whitelist_ip, user, password, api_key, scan_timeout):
    """Запустить сканирование URL и вывести находки."""
    cfg = ctx.obj['config']
    if (user is None) != (password is None):
        print_error('--user и --password задаются только вместе')
    credentials = SiteCredentials(user=user, password=password) if user is not None else None
    cooperation = None
    if whitelist_ip or credentials or api_key:
        cooperation = CooperationOptions(
            whitelist_ip=whitelist_ip, site_credentials=credentials, api_key=api_key
        )
    options = ScanOptions(cooperation=cooperation, allow_browser_fallback=not no_browser)

    logger.info('Starting scan of %s', url)
    try:
        if scan_timeout:
            findings = asyncio.run(
                asyncio.wait_for(start_scan(url, options, cfg), timeout=scan_timeout)
            )
        else:
            findings = asyncio.run(start_scan(url, options, cfg))
    except asyncio.TimeoutError:
        print_error(f'Сканирование не завершено за {scan_timeout} секунд')
    except ScanError as e:
        click.echo(json.dumps(e.to_dict(), ensure_ascii=False, indent=2 if pretty else None))
        print_error(f'Сканирование прервано ({e.status_code} {e.reason}): {e.message}')
    except Exception as e:
        logger.error('Scan failed unexpectedly: %s', e)
        click.echo(json.dumps(ScanError(str(e)).to_dict(), ensure_ascii=False, indent=2 if pretty else None))
        print_error(f'Ошибка при сканировании: {e}')

    indent = 2 if pretty else None
    if not json_output:
        click.echo(json.dumps([f.to_dict() for f in findings], ensure_ascii=False, indent=indent))
        return

    report = aggregate_results(url, findings)
    try:
        saved_json = render_json(report, json_output, pretty=pretty)
    except OSError as e:
        print_error(f'Ошибка при сохранении JSON: {e}')
    click.echo(f'JSON report: {saved_json}')
    click.echo(f'{report.total} checked, {report.broken} broken')


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
