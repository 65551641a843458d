"""Setup script for the kiosk supervisor."""

import os
from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install


def post_install_setup():
    """Create the configuration and log directories and show setup guidance."""
    try:
        config_dir = Path.home() / ".config" / "kiosk-supervisor"
        log_dir = Path.home() / ".local" / "share" / "kiosk-supervisor" / "logs"

        for directory in [config_dir, log_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            if hasattr(os, "chmod"):
                os.chmod(directory, 0o755)

        config_file = config_dir / "config.yaml"
        if not config_file.exists():
            print("\n" + "=" * 60)
            print("Kiosk Supervisor Installation Complete!")
            print("=" * 60)
            print(f"Configuration directory: {config_dir}")
            print(f"Log directory: {log_dir}")
            print("\nNext Steps:")
            print('1. Run \'kiosk-supervisor -- "your command"\' to start supervising')
            print("2. Optionally create config.yaml in the config directory")
            print("3. For power-loss shutdown, allow passwordless shutdown in sudoers:")
            print("   %sudo ALL=(ALL) NOPASSWD: /sbin/shutdown")
            print("=" * 60)

    except OSError as e:
        print(f"Warning: Post-install setup failed: {e}")
        print("You may need to create configuration directories manually.")


class PostInstallCommand(install):
    """Custom install command with post-install setup."""

    def run(self):
        install.run(self)
        post_install_setup()


class PostDevelopCommand(develop):
    """Custom develop command with post-install setup."""

    def run(self):
        develop.run(self)
        post_install_setup()


readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Runtime requirements and test requirements share requirements.txt
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().strip().split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "pytest" in line:
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="kiosk-supervisor",
    version="1.0.0",
    description="Kiosk supervisor: secondary-screen browser, workload auto-restart and "
    "graceful shutdown on AC power loss",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Kiosk Supervisor Team",
    packages=find_packages(include=["kiosk_supervisor", "kiosk_supervisor.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "test": dev_requirements,
        "dev": dev_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Environment :: X11 Applications",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Monitoring",
        "Topic :: System :: Power (UPS)",
        "Framework :: AsyncIO",
    ],
    keywords="kiosk supervisor firefox xrandr wmctrl sway power-loss shutdown raspberry-pi async",
    entry_points={
        "console_scripts": [
            "kiosk-supervisor=kiosk_supervisor.__main__:main",
        ],
    },
    cmdclass={
        "install": PostInstallCommand,
        "develop": PostDevelopCommand,
    },
    zip_safe=False,
    platforms=["linux"],
)
