from django.urls import path
from . import views

app_name = 'chat'

urlpatterns = [
    path('unread-counts/', views.unread_counts, name='unread-counts'),
    path('<int:conversation_id>/messages/', views.conversation_messages, name='conversation-messages'),
    path('<int:conversation_id>/mark-read/', views.mark_read, name='mark-read'),
]
