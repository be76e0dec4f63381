"""CourseHub: video courses with PDF notes and a sequential upload client."""

__version__ = "0.1.0"
