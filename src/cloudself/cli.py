from pathlib import Path

import typer
from dotenv import load_dotenv, find_dotenv
from typing_extensions import Annotated

load_dotenv(find_dotenv())

app = typer.Typer(
    help="CloudSelf: static website provisioner for Kubernetes",
    add_completion=False,
)

OutputDir = Annotated[
    Path, typer.Option("-o", "--output", help="Directory holding the CRD YAML files")
]


@app.command("operator")
def run_operator():
    """Run the Kubernetes operator (connects to cluster)."""
    from cloudself.main import main

    main()


@app.command("generate-crds")
def generate_crds(output: OutputDir = Path("crds/generated")):
    """Write the Website CRD YAML from the pydantic models."""
    from cloudself.crd.generator import WebsiteCRDManager

    for path in WebsiteCRDManager(output_dir=output).write_crds():
        typer.echo(f"Wrote {path}")


@app.command("check-crds")
def check_crds(output: OutputDir = Path("crds/generated")):
    """Fail if the CRD YAML on disk no longer matches the models."""
    from cloudself.crd.generator import WebsiteCRDManager

    problems = WebsiteCRDManager(output_dir=output).check_crds()
    for problem in problems:
        typer.echo(problem, err=True)
    if problems:
        raise typer.Exit(1)
    typer.echo(f"CRDs in {output} are up to date")


if __name__ == "__main__":
    app()
