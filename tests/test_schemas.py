import importlib.util
import warnings
from pathlib import Path

import pytest
from pydantic.warnings import PydanticDeprecatedSince20

ROOT = Path(__file__).resolve().parent.parent

MODEL_MODULES = [
    "app/config/settings.py",
    "app/core/auth/schemas.py",
    "app/shared/schemas/common.py",
    "app/modules/billing/schemas.py",
    "app/modules/companies/schemas.py",
    "app/modules/reports/schemas.py",
    "app/modules/sessions/schemas.py",
    "app/modules/users/schemas.py",
]


@pytest.mark.parametrize("path", MODEL_MODULES)
def test_models_define_config_without_deprecated_class(path):
    # Se ejecuta una copia aparte del módulo: sys.modules no cambia
    name = path[:-3].replace("/", ".")
    spec = importlib.util.spec_from_file_location(name, ROOT / path)
    module = importlib.util.module_from_spec(spec)

    with warnings.catch_warnings():
        warnings.simplefilter("error", PydanticDeprecatedSince20)
        spec.loader.exec_module(module)
