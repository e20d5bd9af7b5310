"""
ian settings - AI model selection and custom prompt templates.
"""

from pathlib import Path

from ian.lib.models_config import load_models_config
from ian.lib.prompts import PromptError
from ian.lib.settings import AUTH_MODES
from ian.lib.steps import PIPELINE_STEPS, TEMPLATE_STEP_IDS
from ian.workflow.engine import Runtime


async def cmd_settings_show(args, runtime: Runtime) -> int:
    """Show AI settings and which steps use custom templates."""
    ai = await runtime.settings.ai_settings()
    overrides = (await runtime.settings.read_custom_prompts()).unwrap_or({}) or {}

    print("AI")
    print("-" * 40)
    print(f"  Model:       {ai.model}")
    print(f"  Temperature: {ai.temperature if ai.temperature is not None else 'default'}")
    print(f"  Auth mode:   {ai.auth_mode or 'auto'}")
    print()

    print("Templates")
    print("-" * 40)
    names = {s.id: s.name for s in PIPELINE_STEPS}
    for step_id in TEMPLATE_STEP_IDS:
        source = "custom" if overrides.get(step_id) else "default"
        print(f"  {step_id:<26} {source:<8} {names.get(step_id, 'Changelog')}")
    print()
    print(f"Storage: {runtime.storage.describe()}")
    return 0


async def cmd_settings_model(args, runtime: Runtime) -> int:
    """Select the model (and optionally temperature / auth mode)."""
    models = load_models_config(runtime.config.home)
    if args.model not in models.models:
        print(f"ERROR: Unknown model '{args.model}'")
        print(f"  Available: {', '.join(sorted(models.models))}")
        return 2

    if args.auth_mode is not None and args.auth_mode not in AUTH_MODES:
        print(f"ERROR: Invalid auth mode '{args.auth_mode}'. Valid: {', '.join(AUTH_MODES)}")
        return 2

    ai = await runtime.settings.ai_settings()
    ai.model = args.model
    if args.temperature is not None:
        ai.temperature = args.temperature
    if args.auth_mode is not None:
        ai.auth_mode = args.auth_mode
    await runtime.settings.save_ai_settings(ai)
    print(f"Model set to {ai.model}")
    return 0


async def cmd_settings_prompt(args, runtime: Runtime) -> int:
    """Show, replace or reset the template for one step."""
    try:
        default = runtime.templates.default_template(args.step)
    except PromptError as e:
        print(f"ERROR: {e}")
        print(f"  Valid steps: {', '.join(TEMPLATE_STEP_IDS)}")
        return 2

    if args.reset:
        await runtime.settings.set_custom_prompt(args.step, None)
        print(f"Template for {args.step} reset to default")
        return 0

    if args.file:
        path = Path(args.file).expanduser()
        try:
            template = path.read_text(encoding="utf-8")
        except OSError as e:
            print(f"ERROR: {e}")
            return 2
        if not template.strip():
            print(f"ERROR: {path} is empty")
            return 2
        await runtime.settings.set_custom_prompt(args.step, template)
        print(f"Custom template saved for {args.step}")
        return 0

    if args.default:
        print(default)
    else:
        print(await runtime.templates.get_template(args.step))
    return 0
