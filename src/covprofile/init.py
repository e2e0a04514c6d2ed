from pathlib import Path
from importlib.resources import files

def copy_resource(resource_name: str, outfile: Path):
    """Copy a resource file to a given output file"""
    content = files('covprofile.resources').joinpath(resource_name).read_text(encoding='utf-8')
    with open(outfile, 'w', encoding='utf-8') as f:
        f.write(content)

def init_project(project_dir: Path):
    """Initialize a new project directory with a default config

    Args:
        project_dir: Path to create new project in.
    """
    if project_dir.exists():
        raise FileExistsError(f"Directory {project_dir} already exists")
    project_dir.mkdir()

    copy_resource('config.default.yaml', project_dir / 'config.yaml')
    print(f"""Project initialized at {project_dir}

Files created:
  {project_dir}/
    config.yaml: Edit this file to configure your project
""", end='')
