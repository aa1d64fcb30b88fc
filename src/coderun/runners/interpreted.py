from __future__ import annotations

from ..core.models import Language
from .base import Adapter, run_stage


class JavaScriptAdapter(Adapter):
    language = Language.JAVASCRIPT
    extension = "js"
    templates = (run_stage("node", "{source}"),)


class PythonAdapter(Adapter):
    language = Language.PYTHON
    extension = "py"
    templates = (run_stage("python3", "{source}"),)


class RubyAdapter(Adapter):
    language = Language.RUBY
    extension = "rb"
    templates = (run_stage("ruby", "{source}"),)


class PerlAdapter(Adapter):
    language = Language.PERL
    extension = "pl"
    templates = (run_stage("perl", "{source}"),)


class LuaAdapter(Adapter):
    language = Language.LUA
    extension = "lua"
    templates = (run_stage("lua", "{source}"),)


class JuliaAdapter(Adapter):
    language = Language.JULIA
    extension = "jl"
    templates = (run_stage("julia", "{source}"),)


class RAdapter(Adapter):
    language = Language.R
    extension = "r"
    templates = (run_stage("Rscript", "{source}"),)
