#!/usr/bin/env python3
"""IAN CLI entrypoint."""

import sys
import asyncio
import argparse
import logging

from ian.lib.config import load_app_config
from ian.lib.validate import ValidationError
from ian.storage import StorageError, StorageNotConfigured, StoragePermissionError
from ian.workflow.engine import open_runtime
from ian.commands import new as cmd_new_module
from ian.commands import list as cmd_list_module
from ian.commands import show as cmd_show_module
from ian.commands import run as cmd_run_module
from ian.commands import version as cmd_version_module
from ian.commands import trash as cmd_trash_module
from ian.commands import storage as cmd_storage_module
from ian.commands import settings as cmd_settings_module
from ian.commands import grade as cmd_grade_module
from ian.commands import license as cmd_license_module


def _execute(coro) -> int:
    """Run a command coroutine and map storage failures to exit codes."""
    try:
        return asyncio.run(coro)
    except StorageNotConfigured as e:
        print(f"ERROR: {e}")
        return 2
    except StoragePermissionError as e:
        print(f"ERROR: {e}")
        return 1
    except (StorageError, ValidationError) as e:
        print(f"ERROR: {e}")
        return 1


def with_runtime(command, args) -> int:
    """Open storage and collaborators, run the command, close everything."""
    config = load_app_config()

    async def _run():
        runtime = await open_runtime(config)
        try:
            return await command(args, runtime)
        finally:
            await runtime.close()

    return _execute(_run())


def with_config(command, args) -> int:
    return _execute(command(args, load_app_config()))


def cmd_new(args):
    return with_runtime(cmd_new_module.cmd_new, args)


def cmd_list(args):
    return with_runtime(cmd_list_module.cmd_list, args)


def cmd_show(args):
    return with_runtime(cmd_show_module.cmd_show, args)


def cmd_run(args):
    return with_runtime(cmd_run_module.cmd_run, args)


def cmd_version(args):
    return with_runtime(cmd_version_module.cmd_version, args)


def cmd_delete(args):
    return with_runtime(cmd_trash_module.cmd_delete, args)


def cmd_trash_list(args):
    return with_runtime(cmd_trash_module.cmd_trash_list, args)


def cmd_trash_restore(args):
    return with_runtime(cmd_trash_module.cmd_trash_restore, args)


def cmd_trash_purge(args):
    return with_runtime(cmd_trash_module.cmd_trash_purge, args)


def cmd_storage_status(args):
    return with_config(cmd_storage_module.cmd_storage_status, args)


def cmd_storage_select(args):
    return with_config(cmd_storage_module.cmd_storage_select, args)


def cmd_storage_clear(args):
    return with_config(cmd_storage_module.cmd_storage_clear, args)


def cmd_settings_show(args):
    return with_runtime(cmd_settings_module.cmd_settings_show, args)


def cmd_settings_model(args):
    return with_runtime(cmd_settings_module.cmd_settings_model, args)


def cmd_settings_prompt(args):
    return with_runtime(cmd_settings_module.cmd_settings_prompt, args)


def cmd_grade_new(args):
    return with_runtime(cmd_grade_module.cmd_grade_new, args)


def cmd_grade_run(args):
    return with_runtime(cmd_grade_module.cmd_grade_run, args)


def cmd_grade_list(args):
    return with_runtime(cmd_grade_module.cmd_grade_list, args)


def cmd_grade_show(args):
    return with_runtime(cmd_grade_module.cmd_grade_show, args)


def cmd_license_status(args):
    return with_runtime(cmd_license_module.cmd_license_status, args)


def cmd_license_install(args):
    return with_runtime(cmd_license_module.cmd_license_install, args)


def cmd_license_remove(args):
    return with_runtime(cmd_license_module.cmd_license_remove, args)


def _add_reference_args(parser):
    parser.add_argument('--ref-folder', action='append', metavar='DIR', help='Reference folder; its text files are read (repeatable)')
    parser.add_argument('--ref-file', action='append', metavar='PATH', help='Reference text file (repeatable)')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ian', description='IAN document pipeline')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # ian new
    p_new = subparsers.add_parser('new', help='Create a job')
    p_new.add_argument('title', help='Job title')
    p_new.add_argument('--description', '-d', help='Project description')
    p_new.add_argument('--description-file', help='Read the description from a file')
    _add_reference_args(p_new)
    p_new.set_defaults(func=cmd_new)

    # ian list
    p_list = subparsers.add_parser('list', help='List jobs')
    p_list.add_argument('--all', '-a', action='store_true', help='Include grading jobs')
    p_list.set_defaults(func=cmd_list)

    # ian show
    p_show = subparsers.add_parser('show', help='Show job details')
    p_show.add_argument('id', help='Job ID')
    p_show.add_argument('--output', '-o', help='Print one output (file name, prefix like 04, or step ID)')
    p_show.add_argument('--changelog', action='store_true', help='Print the changelog of the current version')
    p_show.set_defaults(func=cmd_show)

    # ian run
    p_run = subparsers.add_parser('run', help='Generate all documents for a job')
    p_run.add_argument('id', help='Job ID')
    p_run.add_argument('--force', action='store_true', help='Run even if the job is marked running')
    p_run.set_defaults(func=cmd_run)

    # ian version
    p_version = subparsers.add_parser('version', help='Create a new version of a job')
    p_version.add_argument('id', help='Job ID')
    p_version.add_argument('--reason', '-r', required=True, help='Why the new version is needed')
    _add_reference_args(p_version)
    p_version.add_argument('--run', action='store_true', help='Run the pipeline for the new version')
    p_version.set_defaults(func=cmd_version)

    # ian delete
    p_delete = subparsers.add_parser('delete', help='Delete a job (to trash where supported)')
    p_delete.add_argument('id', help='Job ID')
    p_delete.add_argument('--grading', action='store_true', help='Delete a grading job')
    p_delete.set_defaults(func=cmd_delete)

    # ian trash
    p_trash = subparsers.add_parser('trash', help='Manage deleted jobs')
    p_trash.set_defaults(func=cmd_trash_list)
    trash_sub = p_trash.add_subparsers(dest='trash_cmd')

    p_trash_list = trash_sub.add_parser('list', help='List trashed jobs')
    p_trash_list.set_defaults(func=cmd_trash_list)

    p_trash_restore = trash_sub.add_parser('restore', help='Restore a trashed job')
    p_trash_restore.add_argument('trash_id', help='Trash ID (from ian trash list)')
    p_trash_restore.set_defaults(func=cmd_trash_restore)

    p_trash_purge = trash_sub.add_parser('purge', help='Permanently delete trashed jobs')
    p_trash_purge.add_argument('trash_id', nargs='?', help='Trash ID')
    p_trash_purge.add_argument('--all', action='store_true', help='Empty the trash')
    p_trash_purge.set_defaults(func=cmd_trash_purge)

    # ian storage
    p_storage = subparsers.add_parser('storage', help='Storage location')
    p_storage.set_defaults(func=cmd_storage_status)
    storage_sub = p_storage.add_subparsers(dest='storage_cmd')

    p_storage_status = storage_sub.add_parser('status', help='Show the active storage')
    p_storage_status.set_defaults(func=cmd_storage_status)

    p_storage_select = storage_sub.add_parser('select', help='Store jobs in a directory (or --kv)')
    p_storage_select.add_argument('directory', nargs='?', help='Storage directory')
    p_storage_select.add_argument('--kv', action='store_true', help='Use the key-value store')
    p_storage_select.add_argument('--migrate', action='store_true', help='Copy existing jobs to the new location')
    p_storage_select.set_defaults(func=cmd_storage_select)

    p_storage_clear = storage_sub.add_parser('clear', help='Forget the selected location')
    p_storage_clear.set_defaults(func=cmd_storage_clear)

    # ian settings
    p_settings = subparsers.add_parser('settings', help='AI and template settings')
    p_settings.set_defaults(func=cmd_settings_show)
    settings_sub = p_settings.add_subparsers(dest='settings_cmd')

    p_settings_show = settings_sub.add_parser('show', help='Show settings')
    p_settings_show.set_defaults(func=cmd_settings_show)

    p_settings_model = settings_sub.add_parser('model', help='Select the AI model')
    p_settings_model.add_argument('model', help='Model ID (see models.yaml)')
    p_settings_model.add_argument('--temperature', type=float, help='Sampling temperature')
    p_settings_model.add_argument('--auth-mode', help='Gemini auth: api_key or gcloud')
    p_settings_model.set_defaults(func=cmd_settings_model)

    p_settings_prompt = settings_sub.add_parser('prompt', help='Show or customize a step template')
    p_settings_prompt.add_argument('step', help='Step ID')
    prompt_mode = p_settings_prompt.add_mutually_exclusive_group()
    prompt_mode.add_argument('--file', '-f', help='Use this file as the template')
    prompt_mode.add_argument('--reset', action='store_true', help='Restore the default template')
    prompt_mode.add_argument('--default', action='store_true', help='Print the built-in template')
    p_settings_prompt.set_defaults(func=cmd_settings_prompt)

    # ian grade
    p_grade = subparsers.add_parser('grade', help='Grade requirements')
    p_grade.set_defaults(func=cmd_grade_list)
    grade_sub = p_grade.add_subparsers(dest='grade_cmd')

    p_grade_new = grade_sub.add_parser('new', help='Create a grading job')
    p_grade_new.add_argument('title', help='Job title')
    p_grade_new.add_argument('--file', '-f', required=True, help='Requirements document (.md/.txt) or JSON list')
    p_grade_new.add_argument('--description', '-d', help='Job description')
    p_grade_new.add_argument('--team', action='append', metavar='"NAME: DESCRIPTION"', help='Team (repeatable)')
    p_grade_new.add_argument('--teams-file', help='YAML/JSON list of {name, description}')
    p_grade_new.set_defaults(func=cmd_grade_new)

    p_grade_run = grade_sub.add_parser('run', help='Grade a job')
    p_grade_run.add_argument('id', help='Grading job ID')
    p_grade_run.add_argument('--no-refine', action='store_true', help='Skip user-story refinement')
    p_grade_run.set_defaults(func=cmd_grade_run)

    p_grade_list = grade_sub.add_parser('list', help='List grading jobs')
    p_grade_list.set_defaults(func=cmd_grade_list)

    p_grade_show = grade_sub.add_parser('show', help='Show a grading report')
    p_grade_show.add_argument('id', help='Grading job ID')
    p_grade_show.add_argument('--json', action='store_true', help='Print the raw job')
    p_grade_show.set_defaults(func=cmd_grade_show)

    # ian license
    p_license = subparsers.add_parser('license', help='License management')
    p_license.set_defaults(func=cmd_license_status)
    license_sub = p_license.add_subparsers(dest='license_cmd')

    p_license_status = license_sub.add_parser('status', help='Show license status')
    p_license_status.set_defaults(func=cmd_license_status)

    p_license_install = license_sub.add_parser('install', help='Install a license file')
    p_license_install.add_argument('file', help='License JSON file')
    p_license_install.set_defaults(func=cmd_license_install)

    p_license_remove = license_sub.add_parser('remove', help='Remove the license')
    p_license_remove.set_defaults(func=cmd_license_remove)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
