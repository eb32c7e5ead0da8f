"""modkit scaffolder -- turns the bundled template tree into a mod project.

Quick usage::

    from modkit.scaffolder import generate_template_variables, clone_template

    variables = await generate_template_variables(config)
    await clone_template(config, variables)
"""

from modkit.scaffolder.steps import (
    CONTENT_STEPS,
    POST_ACTIONS,
    TEMPLATE_STEPS,
    StepError,
    add_sample_code,
    apply_license,
    apply_template_variables,
    clone_template,
    configure_loaders,
    finalize_project,
    generate_service_registration_files,
    initialize_git,
    install_libraries,
    install_runtime_mods,
    open_in_intellij,
    open_in_vscode,
    rename_class_files,
    rename_mixin_files,
    run_gradle,
    transform_package_structure,
)
from modkit.scaffolder.templates import TemplateRenderer
from modkit.scaffolder.variables import DEFAULT_VARIABLES, generate_template_variables

__all__ = [
    "CONTENT_STEPS",
    "DEFAULT_VARIABLES",
    "POST_ACTIONS",
    "StepError",
    "TEMPLATE_STEPS",
    "TemplateRenderer",
    "add_sample_code",
    "apply_license",
    "apply_template_variables",
    "clone_template",
    "configure_loaders",
    "finalize_project",
    "generate_service_registration_files",
    "generate_template_variables",
    "initialize_git",
    "install_libraries",
    "install_runtime_mods",
    "open_in_intellij",
    "open_in_vscode",
    "rename_class_files",
    "rename_mixin_files",
    "run_gradle",
    "transform_package_structure",
]
