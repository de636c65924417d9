"""
Management command to ensure every role exists and one demo user per role.

Usage:
    python manage.py ensure_demo_user_roles

Idempotent. Development only: demo passwords are reset on every run.
"""
from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from apps.authz.models import Role, UserRole, RoleChoices


DEMO_PASSWORD = 'demo123dev'


class Command(BaseCommand):
    help = 'Ensure roles exist and demo users are assigned to them'

    def handle(self, *args, **options):
        User = get_user_model()

        self.stdout.write("Ensuring roles exist...")
        for role_choice in RoleChoices:
            role, created = Role.objects.get_or_create(name=role_choice)
            if created:
                self.stdout.write(self.style.SUCCESS(f'  ✓ Created role: {role.name}'))
            else:
                self.stdout.write(f'  - Role exists: {role.name}')

        self.stdout.write("\nEnsuring demo users...")
        for role_choice in RoleChoices:
            email = f'{role_choice.value}@clinic.example'
            user, user_created = User.objects.get_or_create(
                email=email,
                defaults={
                    'first_name': role_choice.label,
                    'is_active': True,
                    'is_staff': role_choice in (RoleChoices.SUPER_ADMIN, RoleChoices.ADMIN),
                }
            )
            user.set_password(DEMO_PASSWORD)
            user.save()
            if user_created:
                self.stdout.write(self.style.SUCCESS(f'  ✓ Created user: {email}'))
            else:
                self.stdout.write(f'  - User exists: {email} (password reset)')

            role = Role.objects.get(name=role_choice)
            _, role_created = UserRole.objects.get_or_create(user=user, role=role)
            if role_created:
                self.stdout.write(self.style.SUCCESS(f'    ✓ Assigned {role.name} role to {email}'))

        self.stdout.write(self.style.SUCCESS('\n✓ Done'))
