"""sonar-fix: overlay SonarCloud issues on source files and resolve them with StackSpot AI."""

__version__ = "0.1.0"
