#!/usr/bin/env python
"""Django's command-line utility for administrative tasks."""
import os
import sys


def main():
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'core.settings')
    from django.core.management import execute_from_command_line

    if len(sys.argv) >= 2 and sys.argv[1] == 'runserver' and len(sys.argv) == 2:
        from django.conf import settings
        sys.argv.append(f'0.0.0.0:{settings.PORT}')

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
