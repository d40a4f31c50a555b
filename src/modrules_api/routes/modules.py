"""/modules routes: read-only views over the cached module index."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from modrules.checks import check_index
from modrules.descriptor import UnknownDependency, dump, dump_yaml
from modrules.registry import ModuleIndex, load_index

router = APIRouter()


def _index() -> ModuleIndex:
    return load_index()


def _get_or_404(name: str):
    index = _index()
    try:
        return index, index.get(name)
    except UnknownDependency as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/modules")
def list_modules():  # noqa: D401
    index = _index()
    modules = [
        {
            "name": desc.name,
            "path": str(index.path_of(desc.name)),
            "pch_usage": desc.pch_usage.value if desc.pch_usage else None,
            "public_dependencies": sorted(desc.public_dependencies),
            "private_dependencies": sorted(desc.private_dependencies),
        }
        for desc in index
    ]
    failures = [
        {"path": f.path, "error_type": f.error_type, "message": f.message}
        for f in index.failures
    ]
    return {"root": str(index.root), "modules": modules, "failures": failures}


@router.get("/modules/{name}")
def get_module(name: str):  # noqa: D401
    index, desc = _get_or_404(name)
    payload = desc.to_dict()
    payload["path"] = str(index.path_of(name))
    return payload


@router.get("/modules/{name}/source", response_class=PlainTextResponse)
def get_module_source(
    name: str, format: Literal["buildcs", "yaml"] = "buildcs"
):  # noqa: D401
    _, desc = _get_or_404(name)
    if format == "yaml":
        return PlainTextResponse(dump_yaml(desc), media_type="application/yaml")
    return PlainTextResponse(dump(desc))


@router.get("/check")
def check():  # noqa: D401
    findings = check_index(_index())
    return {"findings": [f.to_dict() for f in findings]}
