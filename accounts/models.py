# accounts/models.py
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from .managers import CustomUserManager


class Role(models.TextChoices):
    BUYER = 'buyer', 'Pembeli'
    MERCHANT = 'merchant', 'Pedagang'
    COURIER = 'courier', 'Kurir'
    VERIFIKATOR = 'verifikator', 'Verifikator'
    ADMIN_DESA = 'admin_desa', 'Admin Desa'
    ADMIN = 'admin', 'Admin'
    SUPERADMIN = 'superadmin', 'Super Admin'


class User(AbstractBaseUser, PermissionsMixin):
    email = models.EmailField(unique=True)
    username = models.CharField(max_length=150, unique=True)
    full_name = models.CharField(max_length=150)
    phone_number = models.CharField(max_length=20, blank=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.BUYER)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    current_token_user = models.CharField(max_length=512, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CustomUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username', 'full_name']

    def get_unread_notifications(self):
        return self.user_notifications.filter(is_read=False)

    def __str__(self):
        return self.email
